"""
============================================================================
Accrual Keeper v1.0.0
Observability Module - Prometheus Metrics
============================================================================
"""

from keeper.observability.metrics import (
    TICKS_TOTAL,
    TICK_SKIPS_TOTAL,
    SUBMISSION_ATTEMPTS_TOTAL,
    DISTRIBUTED_AMOUNT_TOTAL,
    ADVISORY_FALLBACKS_TOTAL,
    CONSECUTIVE_FAILURES_GAUGE,
    VAULT_BALANCE_GAUGE,
    record_tick,
    record_submission_attempt,
    record_distribution,
    record_advisory_fallback,
    update_consecutive_failures,
    update_vault_balance,
)

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
