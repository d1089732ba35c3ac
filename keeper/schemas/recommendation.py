"""
============================================================================
Accrual Keeper v1.0.0
Recommendation Schema - Closed Model for Advisory Payloads
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Untrusted JSON from the advisory source
Side Effects: None (pure validation)

SOVEREIGN MANDATE:
- The advisory source is untrusted. Every field is checked with strict
  types; nothing is coerced ("5" is not 5, true is not 1).
- The action is a closed enum. Anything else is rejected.
- Amounts are integers in currency minor units, never floats.

============================================================================
"""

import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# CONSTANTS
# ============================================================================

# Reason text is free-form; only the log line is capped
LOG_REASON_LENGTH = 200


# ============================================================================
# ENUMS
# ============================================================================

class RecommendationAction(str, Enum):
    """
    Closed set of advisory actions.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Must be exactly one of the three values
    Side Effects: None
    """
    DISTRIBUTE = "DISTRIBUTE"
    HOLD = "HOLD"
    PAUSE = "PAUSE"


# ============================================================================
# MODEL
# ============================================================================

class Recommendation(BaseModel):
    """
    One distribution recommendation, produced fresh every tick.

    Reliability Level: SOVEREIGN TIER
    Input Constraints:
        - action in {DISTRIBUTE, HOLD, PAUSE}
        - amount: int, amount >= 0 (the clamp bounds it)
        - confidence: finite number in [0, 1]
        - reason: str
    Side Effects: None

    Extra keys in the payload are ignored; they never reach the keeper.
    """
    model_config = ConfigDict(strict=True, frozen=True, extra="ignore")

    action: RecommendationAction
    amount: int = Field(ge=0)
    confidence: float = Field(ge=0.0, le=1.0, allow_inf_nan=False)
    reason: str

    @field_validator("action", mode="before")
    @classmethod
    def _action_must_be_string(cls, value: Any) -> Any:
        # Strict enum validation would otherwise accept enum members only;
        # JSON gives us strings.
        if isinstance(value, RecommendationAction):
            return value
        if not isinstance(value, str):
            raise ValueError(f"action must be a string, got {type(value).__name__}")
        try:
            return RecommendationAction(value)
        except ValueError:
            raise ValueError(f"action {value!r} is not one of DISTRIBUTE, HOLD, PAUSE")

    @field_validator("amount", "confidence", mode="before")
    @classmethod
    def _reject_bool(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("booleans are not numbers")
        return value

    @field_validator("confidence", mode="after")
    @classmethod
    def _confidence_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("confidence must be finite")
        return value

    def to_log(self) -> str:
        reason = self.reason
        if len(reason) > LOG_REASON_LENGTH:
            reason = reason[:LOG_REASON_LENGTH] + "..."
        return (
            f"action={self.action.value} | amount={self.amount} | "
            f"confidence={self.confidence:.2f} | reason=\"{reason}\""
        )


__all__ = [
    "LOG_REASON_LENGTH",
    "RecommendationAction",
    "Recommendation",
]
