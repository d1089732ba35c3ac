# ============================================================================
# Accrual Keeper v1.0.0
# Schemas - Advisory Payloads and Ledger Account Layouts
# ============================================================================

from keeper.schemas.recommendation import Recommendation, RecommendationAction
from keeper.schemas.ledger_state import (
    AccountDecodeError,
    GlobalAccrualState,
    UserAccrualState,
    derive_address,
)

__all__ = [
    "Recommendation",
    "RecommendationAction",
    "AccountDecodeError",
    "GlobalAccrualState",
    "UserAccrualState",
    "derive_address",
]
