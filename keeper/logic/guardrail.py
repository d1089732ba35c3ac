"""
============================================================================
Accrual Keeper v1.0.0
Guardrail Clamp - Deterministic Bounds on Every Distribution
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Recommendation (untrusted origin), ledger state, balance
Side Effects: None (pure function, no I/O, no hidden state)

PURPOSE
-------
The clamp is the last local checkpoint before a state-mutating call. It
bounds the advisory amount to the intersection of every limit the keeper can
observe:

    1. action must be DISTRIBUTE (PAUSE is never acted on autonomously)
    2. amount must be a positive integer
    3. amount <= max_per_period
    4. amount <= max_per_window - distributed_this_window
    5. clamped amount must still be > 0
    6. vault balance must cover the clamped amount

The ledger enforces the same caps server-side. The clamp does not rely on
that: it assumes the remote checks could be bypassed.

============================================================================
"""

import logging
import math
from dataclasses import dataclass
from typing import Any

from keeper.schemas.ledger_state import GlobalAccrualState
from keeper.schemas.recommendation import Recommendation, RecommendationAction

logger = logging.getLogger(__name__)


# ============================================================================
# DECISION REASONS
# ============================================================================

REASON_NOT_DISTRIBUTE = "action_not_distribute"
REASON_PAUSE_REQUESTED = "pause_requires_human"
REASON_INVALID_AMOUNT = "invalid_amount"
REASON_CAPPED_TO_ZERO = "capped_to_zero"
REASON_INSUFFICIENT_VAULT = "insufficient_vault_balance"
REASON_APPROVED = "approved"


@dataclass(frozen=True)
class ClampDecision:
    """
    Immutable go/no-go decision from the guardrail clamp.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: amount >= 0
    Side Effects: None
    """
    proceed: bool
    amount: int
    reason: str

    @classmethod
    def reject(cls, reason: str) -> "ClampDecision":
        return cls(proceed=False, amount=0, reason=reason)


def _is_positive_int(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value > 0
    if isinstance(value, float):
        return math.isfinite(value) and value > 0 and value.is_integer()
    return False


def clamp(
    recommendation: Recommendation,
    state: GlobalAccrualState,
    vault_balance: int,
) -> ClampDecision:
    """
    Clamp a recommendation through every local safety bound.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: state should already be rolled to the tick timestamp
    Side Effects: Logs the decision

    Args:
        recommendation: Validated (or fallback) recommendation
        state: Global accrual state as of this tick
        vault_balance: Funding pool balance in minor units

    Returns:
        ClampDecision whose amount is <= recommendation.amount,
        max_per_period, the remaining window budget and vault_balance
    """
    if recommendation.action != RecommendationAction.DISTRIBUTE:
        if recommendation.action == RecommendationAction.PAUSE:
            logger.warning(
                f"[GUARDRAIL] Advisor recommended PAUSE | "
                f"reason=\"{recommendation.reason}\" | "
                f"keeper cannot pause autonomously; human review needed"
            )
            return ClampDecision.reject(REASON_PAUSE_REQUESTED)
        return ClampDecision.reject(REASON_NOT_DISTRIBUTE)

    if not _is_positive_int(recommendation.amount):
        logger.warning(
            f"[GUARDRAIL] Invalid amount rejected | amount={recommendation.amount!r}"
        )
        return ClampDecision.reject(REASON_INVALID_AMOUNT)

    amount = int(recommendation.amount)
    amount = min(amount, state.max_per_period)
    amount = min(amount, state.remaining_window_budget)

    if amount <= 0:
        logger.info(
            f"[GUARDRAIL] Amount capped to zero | "
            f"requested={recommendation.amount} | max_per_period={state.max_per_period} | "
            f"remaining_window={state.remaining_window_budget}"
        )
        return ClampDecision.reject(REASON_CAPPED_TO_ZERO)

    if vault_balance < amount:
        logger.warning(
            f"[GUARDRAIL] Vault balance below clamped amount | "
            f"vault_balance={vault_balance} | amount={amount}"
        )
        return ClampDecision.reject(REASON_INSUFFICIENT_VAULT)

    if amount != recommendation.amount:
        logger.info(
            f"[GUARDRAIL] Amount clamped | requested={recommendation.amount} | clamped={amount}"
        )

    return ClampDecision(proceed=True, amount=amount, reason=REASON_APPROVED)


__all__ = [
    "ClampDecision",
    "clamp",
    "REASON_NOT_DISTRIBUTE",
    "REASON_PAUSE_REQUESTED",
    "REASON_INVALID_AMOUNT",
    "REASON_CAPPED_TO_ZERO",
    "REASON_INSUFFICIENT_VAULT",
    "REASON_APPROVED",
]
