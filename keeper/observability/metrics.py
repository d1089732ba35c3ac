"""
============================================================================
Accrual Keeper v1.0.0
Prometheus Metrics - Keeper Observability
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Amounts are integers in currency minor units
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- keeper_ticks_total{outcome}: Ticks by terminal outcome
  (success, failure, skipped)
- keeper_tick_skips_total{reason}: Skipped ticks by reason
- keeper_submission_attempts_total{result}: Individual submission attempts
- keeper_distributed_amount_total: Sum of confirmed distributions
- keeper_advisory_fallbacks_total{reason}: Advisory faults recovered locally
- keeper_consecutive_failures: Current consecutive tick failures
- keeper_vault_balance: Last observed funding pool balance

Recording helpers never raise. A metrics fault must not fail a tick.

============================================================================
"""

import logging
from typing import Optional

from prometheus_client import Counter, Gauge

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

TICKS_TOTAL = Counter(
    "keeper_ticks_total",
    "Total keeper ticks by terminal outcome",
    ["outcome"]
)

TICK_SKIPS_TOTAL = Counter(
    "keeper_tick_skips_total",
    "Total keeper ticks skipped, by reason",
    ["reason"]
)

SUBMISSION_ATTEMPTS_TOTAL = Counter(
    "keeper_submission_attempts_total",
    "Total advance-index submission attempts",
    ["result"]
)

DISTRIBUTED_AMOUNT_TOTAL = Counter(
    "keeper_distributed_amount_total",
    "Sum of confirmed distribution amounts in minor units"
)

ADVISORY_FALLBACKS_TOTAL = Counter(
    "keeper_advisory_fallbacks_total",
    "Advisory faults recovered by the deterministic fallback",
    ["reason"]
)

CONSECUTIVE_FAILURES_GAUGE = Gauge(
    "keeper_consecutive_failures",
    "Current number of consecutive failed ticks"
)

VAULT_BALANCE_GAUGE = Gauge(
    "keeper_vault_balance",
    "Last observed funding pool balance in minor units"
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_tick(outcome: str, skip_reason: Optional[str] = None) -> None:
    """
    Record a tick's terminal outcome.

    Args:
        outcome: "success", "failure" or "skipped"
        skip_reason: Reason label when outcome is "skipped"
    """
    try:
        TICKS_TOTAL.labels(outcome=outcome).inc()
        if skip_reason:
            TICK_SKIPS_TOTAL.labels(reason=skip_reason).inc()
    except Exception as e:
        logger.error("[OBS-001] Failed to record tick metric | error=%s", str(e))


def record_submission_attempt(result: str) -> None:
    try:
        SUBMISSION_ATTEMPTS_TOTAL.labels(result=result).inc()
    except Exception as e:
        logger.error("[OBS-002] Failed to record submission metric | error=%s", str(e))


def record_distribution(amount: int) -> None:
    try:
        DISTRIBUTED_AMOUNT_TOTAL.inc(amount)
    except Exception as e:
        logger.error("[OBS-003] Failed to record distribution metric | error=%s", str(e))


def record_advisory_fallback(reason: str) -> None:
    """
    Record an advisory fault that was absorbed by the fallback policy.

    Args:
        reason: unconfigured, transport, timeout, http_status, unparseable, schema
    """
    try:
        ADVISORY_FALLBACKS_TOTAL.labels(reason=reason).inc()
    except Exception as e:
        logger.error("[OBS-004] Failed to record fallback metric | error=%s", str(e))


def update_consecutive_failures(count: int) -> None:
    try:
        CONSECUTIVE_FAILURES_GAUGE.set(count)
    except Exception as e:
        logger.error("[OBS-005] Failed to update failures gauge | error=%s", str(e))


def update_vault_balance(balance: int) -> None:
    try:
        VAULT_BALANCE_GAUGE.set(balance)
    except Exception as e:
        logger.error("[OBS-006] Failed to update vault gauge | error=%s", str(e))


__all__ = [
    "TICKS_TOTAL",
    "TICK_SKIPS_TOTAL",
    "SUBMISSION_ATTEMPTS_TOTAL",
    "DISTRIBUTED_AMOUNT_TOTAL",
    "ADVISORY_FALLBACKS_TOTAL",
    "CONSECUTIVE_FAILURES_GAUGE",
    "VAULT_BALANCE_GAUGE",
    "record_tick",
    "record_submission_attempt",
    "record_distribution",
    "record_advisory_fallback",
    "update_consecutive_failures",
    "update_vault_balance",
]


# ============================================================================
# Sovereign Reliability Audit
# ============================================================================
#
# [Module Audit]
# Module: keeper/observability/metrics.py
# Error Handling: [OBS-001..006 logged, never raised]
# Integer Integrity: [Verified - amounts are ints until the Prometheus boundary]
#
# ============================================================================
