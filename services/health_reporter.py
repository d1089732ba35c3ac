"""
============================================================================
Accrual Keeper - Health Reporter
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: Every transition is logged

Process-wide record of recent tick outcomes:

    record_success(ts) -> failures reset, status ok, total + 1
    record_failure()   -> failures + 1; degraded at 3, error at 10

SINGLE WRITER:
    Only the reconciliation loop calls record_success()/record_failure().
    The status endpoint reads through snapshot(), which returns an
    immutable copy, so a reader never observes a half-applied update.

A single failed submission attempt is NOT a failure here; only a tick
whose retries are exhausted (or whose reads fail) is recorded.

============================================================================
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional
import logging
import time

from keeper.observability import update_consecutive_failures

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEGRADED_THRESHOLD = 3
ERROR_THRESHOLD = 10


class HealthState(str, Enum):
    """Keeper health states."""
    OK = "ok"
    DEGRADED = "degraded"
    ERROR = "error"


def status_for_failures(consecutive_failures: int) -> HealthState:
    """Map a consecutive failure count to a health state."""
    if consecutive_failures >= ERROR_THRESHOLD:
        return HealthState.ERROR
    if consecutive_failures >= DEGRADED_THRESHOLD:
        return HealthState.DEGRADED
    return HealthState.OK


# =============================================================================
# HealthStatus
# =============================================================================

@dataclass(frozen=True)
class HealthStatus:
    """
    Immutable health snapshot.

    Attributes:
        status: ok / degraded / error
        started_at: Process start (unix seconds)
        last_success_ts: Tick timestamp of the last successful update
        consecutive_failures: Failed ticks since the last success
        total_successes: Successful ticks since start
        dry_run: Whether submissions are log-only
    """
    status: HealthState
    started_at: float
    last_success_ts: Optional[int]
    consecutive_failures: int
    total_successes: int
    dry_run: bool

    @property
    def is_ok(self) -> bool:
        return self.status == HealthState.OK

    def uptime_seconds(self, now: float) -> int:
        return max(0, int(now - self.started_at))


# =============================================================================
# HealthReporter
# =============================================================================

class HealthReporter:
    """
    Health state machine written by the reconciliation loop.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Single writer
    Side Effects: Updates keeper_consecutive_failures gauge, logs transitions
    """

    def __init__(self, dry_run: bool = False, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._status = HealthStatus(
            status=HealthState.OK,
            started_at=clock(),
            last_success_ts=None,
            consecutive_failures=0,
            total_successes=0,
            dry_run=dry_run,
        )

    def now(self) -> float:
        return self._clock()

    def record_success(self, ts: int) -> None:
        """Record a successful tick (including dry-run success)."""
        previous = self._status
        self._status = replace(
            previous,
            status=HealthState.OK,
            last_success_ts=ts,
            consecutive_failures=0,
            total_successes=previous.total_successes + 1,
        )
        update_consecutive_failures(0)

        if previous.status != HealthState.OK:
            logger.info(
                f"[KEEPER-HEALTH] Recovered | previous_status={previous.status.value} | "
                f"previous_failures={previous.consecutive_failures}"
            )

    def record_failure(self) -> None:
        """Record a failed tick."""
        previous = self._status
        failures = previous.consecutive_failures + 1
        status = status_for_failures(failures)
        self._status = replace(previous, status=status, consecutive_failures=failures)
        update_consecutive_failures(failures)

        if status != previous.status:
            logger.error(
                f"[KEEPER-HEALTH] Status changed | {previous.status.value} -> {status.value} | "
                f"consecutive_failures={failures}"
            )

    def snapshot(self) -> HealthStatus:
        """Return the current immutable status."""
        return self._status
