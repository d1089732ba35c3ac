"""
============================================================================
Accrual Keeper - Reconciliation Loop
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: Every tick carries a correlation_id (SESSION-xxxxxxxx-T<n>)

PRIME DIRECTIVE:
    "The advisor suggests. The guardrail decides. The ledger enforces."

Per tick:

    IDLE -> READING -> DECIDING -> SUBMITTING -> REPORTING -> IDLE

    READING     read global state; paused or too early -> skip
                read vault balance (and supply, for logs) concurrently
    DECIDING    advisory recommendation (or fallback) -> guardrail clamp
                no-go -> skip
    SUBMITTING  up to max_retries attempts, delay retry_delay * attempt
                between attempts, first success ends the sequence
    REPORTING   success -> record_success(tick_ts)
                exhausted retries or failed reads -> record_failure()

SKIPS ARE NOT FAILURES:
    A paused ledger, a tick inside the minimum interval, a HOLD/PAUSE
    recommendation or a clamp to zero leave health state untouched.

SCHEDULING:
    First tick immediately. Later ticks on a fixed cadence measured from
    loop start. Ticks never overlap; slots missed by a long tick are not
    replayed. stop() ends scheduling but never interrupts a running tick.

============================================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
import asyncio
import logging
import math
import time
import uuid

from keeper.ledger import LedgerClient, SubmissionContext
from keeper.logic.advisor import AdvisoryClient, AdvisoryContext
from keeper.logic.guardrail import clamp
from keeper.observability import (
    record_distribution,
    record_submission_attempt,
    record_tick,
    update_vault_balance,
)
from services.health_reporter import HealthReporter

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SKIP_PAUSED = "paused"
SKIP_TOO_EARLY = "too_early"


class TickOutcome(str, Enum):
    """Terminal outcome of one tick."""
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TickResult:
    """
    Result of one reconciliation tick.

    Attributes:
        outcome: success / failure / skipped
        correlation_id: Tick audit identifier
        reason: Skip or failure reason (None on success)
        amount: Clamped amount that was submitted
        attempts: Submission attempts made
        receipt: Ledger receipt id (None in dry run)
    """
    outcome: TickOutcome
    correlation_id: str
    reason: Optional[str] = None
    amount: int = 0
    attempts: int = 0
    receipt: Optional[str] = None


class SubmissionExhaustedError(Exception):
    """Raised when every submission attempt in a tick has failed."""

    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"submission failed after {attempts} attempts: {last_error}")


def next_tick_delay(started_at: float, now: float, period_seconds: float) -> float:
    """
    Seconds until the next cadence slot strictly after `now`.

    Slots are started_at + k * period_seconds. Slots already passed are
    skipped, not replayed.
    """
    elapsed = max(0.0, now - started_at)
    next_slot = started_at + (math.floor(elapsed / period_seconds) + 1) * period_seconds
    return max(0.0, next_slot - now)


# =============================================================================
# ReconciliationLoop Class
# =============================================================================

class ReconciliationLoop:
    """
    Keeper scheduler and tick sequencer.

    ============================================================================
    LOOP RESPONSIBILITIES:
    ============================================================================
    1. Read authoritative state and decide eligibility
    2. Obtain a recommendation (advisory or deterministic fallback)
    3. Clamp it through every local bound
    4. Submit with bounded linear-backoff retries
    5. Report the tick outcome to the health reporter and metrics
    ============================================================================

    Reliability Level: L6 Critical (Sovereign Tier)
    Input Constraints: tick_period_seconds > 0, max_retries >= 1
    Side Effects: Ledger reads and writes, advisory calls, health updates
    """

    def __init__(
        self,
        ledger: LedgerClient,
        advisor: AdvisoryClient,
        reporter: HealthReporter,
        tick_period_seconds: float = 60,
        window_seconds: int = 86_400,
        max_retries: int = 3,
        retry_delay_seconds: float = 5.0,
        dry_run: bool = False,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if tick_period_seconds <= 0:
            raise ValueError(f"tick_period_seconds must be positive, got: {tick_period_seconds}")
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got: {max_retries}")

        self._ledger = ledger
        self._advisor = advisor
        self._reporter = reporter
        self._tick_period_seconds = tick_period_seconds
        self._window_seconds = window_seconds
        self._max_retries = max_retries
        self._retry_delay_seconds = retry_delay_seconds
        self._dry_run = dry_run
        self._clock = clock
        self._sleep = sleep

        self._session_id = f"SESSION-{uuid.uuid4().hex[:8].upper()}"
        self._tick_count = 0
        self._running = False
        self._stop_event = asyncio.Event()

        logger.info(
            f"[KEEPER-LOOP] Initialized | session={self._session_id} | "
            f"tick_period_seconds={tick_period_seconds} | max_retries={max_retries} | "
            f"retry_delay_seconds={retry_delay_seconds} | dry_run={dry_run}"
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def tick_count(self) -> int:
        return self._tick_count

    # =========================================================================
    # Scheduling
    # =========================================================================

    async def run(self) -> None:
        """
        Run ticks until stop() is called.

        Reliability Level: SOVEREIGN TIER
        Side Effects: Runs ticks; returns after the tick in flight completes
        """
        if self._running:
            logger.warning("[KEEPER-LOOP] Already running, ignoring run request")
            return

        self._running = True
        started_at = self._clock()
        logger.info(f"[KEEPER-LOOP] Started | session={self._session_id}")

        try:
            while not self._stop_event.is_set():
                await self.tick()

                if self._stop_event.is_set():
                    break

                delay = next_tick_delay(started_at, self._clock(), self._tick_period_seconds)
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info(
                f"[KEEPER-LOOP] Stopped | session={self._session_id} | ticks={self._tick_count}"
            )

    def stop(self) -> None:
        """Request a graceful stop. The current tick finishes first."""
        if not self._stop_event.is_set():
            logger.info(f"[KEEPER-LOOP] Stop requested | session={self._session_id}")
        self._stop_event.set()

    # =========================================================================
    # Tick
    # =========================================================================

    async def tick(self) -> TickResult:
        """
        Run one reconciliation tick. Never raises.

        Returns:
            TickResult describing the terminal outcome
        """
        self._tick_count += 1
        correlation_id = f"{self._session_id}-T{self._tick_count}"
        tick_ts = int(self._clock())

        try:
            result = await self._tick(tick_ts, correlation_id)
        except Exception as e:
            logger.error(
                f"[KEEPER-LOOP] Tick failed | error={type(e).__name__}: {e} | "
                f"correlation_id={correlation_id}"
            )
            result = TickResult(
                outcome=TickOutcome.FAILURE,
                correlation_id=correlation_id,
                reason=type(e).__name__,
            )

        self._report(result, tick_ts)
        return result

    async def _tick(self, tick_ts: int, correlation_id: str) -> TickResult:
        # READING
        state = await self._call(self._ledger.read_global_state)

        if state.paused:
            logger.info(f"[KEEPER-LOOP] Program paused, skipping | correlation_id={correlation_id}")
            return TickResult(TickOutcome.SKIPPED, correlation_id, reason=SKIP_PAUSED)

        elapsed = state.seconds_since_update(tick_ts)
        if elapsed < self._tick_period_seconds:
            logger.info(
                f"[KEEPER-LOOP] Too early | elapsed={elapsed}s | "
                f"min_interval={self._tick_period_seconds}s | correlation_id={correlation_id}"
            )
            return TickResult(TickOutcome.SKIPPED, correlation_id, reason=SKIP_TOO_EARLY)

        balance, supply = await asyncio.gather(
            self._call(self._ledger.read_balance, state.reward_vault),
            self._call(self._ledger.read_supply),
            return_exceptions=True,
        )
        if isinstance(balance, BaseException):
            raise balance
        if isinstance(supply, BaseException):
            logger.warning(
                f"[KEEPER-LOOP] Supply read failed, projection unavailable | "
                f"error={supply} | correlation_id={correlation_id}"
            )
            supply = None

        update_vault_balance(balance)
        state = state.rolled(tick_ts, self._window_seconds)
        logger.info(
            f"[KEEPER-LOOP] State read | vault_balance={balance} | {state.to_log()} | "
            f"correlation_id={correlation_id}"
        )

        # DECIDING
        context = AdvisoryContext.from_state(state, balance)
        recommendation = await self._advisor.recommend(context, correlation_id=correlation_id)
        logger.info(
            f"[KEEPER-LOOP] Recommendation | {recommendation.to_log()} | "
            f"correlation_id={correlation_id}"
        )

        decision = clamp(recommendation, state, balance)
        if not decision.proceed:
            logger.info(
                f"[KEEPER-LOOP] Not distributing | reason={decision.reason} | "
                f"correlation_id={correlation_id}"
            )
            return TickResult(TickOutcome.SKIPPED, correlation_id, reason=decision.reason)

        # SUBMITTING
        submission = SubmissionContext(
            correlation_id=correlation_id,
            global_index=state.global_index,
            token_supply=supply,
        )
        try:
            receipt, attempts = await self._submit_with_retry(decision.amount, submission)
        except SubmissionExhaustedError as e:
            logger.error(
                f"[KEEPER-LOOP] All {e.attempts} attempts failed | amount={decision.amount} | "
                f"last_error={e.last_error} | correlation_id={correlation_id}"
            )
            return TickResult(
                TickOutcome.FAILURE,
                correlation_id,
                reason="retries_exhausted",
                amount=decision.amount,
                attempts=e.attempts,
            )

        return TickResult(
            TickOutcome.SUCCESS,
            correlation_id,
            amount=decision.amount,
            attempts=attempts,
            receipt=receipt,
        )

    async def _submit_with_retry(self, amount: int, context: SubmissionContext):
        """
        Submit with linear backoff. Returns (receipt, attempts).

        Raises:
            SubmissionExhaustedError: After max_retries failed attempts
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self._max_retries + 1):
            try:
                receipt = await self._call(
                    self._ledger.submit_distribution, amount, context, self._dry_run
                )
            except Exception as e:
                last_error = e
                record_submission_attempt("failure")
                logger.warning(
                    f"[KEEPER-LOOP] Attempt {attempt}/{self._max_retries} failed | "
                    f"error={e} | correlation_id={context.correlation_id}"
                )
                if attempt < self._max_retries:
                    await self._sleep(self._retry_delay_seconds * attempt)
                continue

            record_submission_attempt("success")
            return receipt, attempt

        raise SubmissionExhaustedError(self._max_retries, last_error)

    # =========================================================================
    # Internal Methods
    # =========================================================================

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    def _report(self, result: TickResult, tick_ts: int) -> None:
        # REPORTING
        if result.outcome == TickOutcome.SUCCESS:
            self._reporter.record_success(tick_ts)
            record_tick(TickOutcome.SUCCESS.value)
            if not self._dry_run:
                record_distribution(result.amount)
            logger.info(
                f"[KEEPER-LOOP] Tick succeeded | amount={result.amount} | "
                f"attempts={result.attempts} | receipt={result.receipt} | "
                f"dry_run={self._dry_run} | correlation_id={result.correlation_id}"
            )
        elif result.outcome == TickOutcome.FAILURE:
            self._reporter.record_failure()
            record_tick(TickOutcome.FAILURE.value)
        else:
            record_tick(TickOutcome.SKIPPED.value, skip_reason=result.reason)


__all__ = [
    "ReconciliationLoop",
    "TickOutcome",
    "TickResult",
    "SubmissionExhaustedError",
    "next_tick_delay",
    "SKIP_PAUSED",
    "SKIP_TOO_EARLY",
]
