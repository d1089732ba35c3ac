# ============================================================================
# Accrual Keeper v1.0.0
# Decision Logic - Advisory Validation, Guardrails and Accrual Math
# ============================================================================

from keeper.logic.advisor import (
    AdvisoryClient,
    AdvisoryContext,
    RecommendationValidator,
    build_fallback_recommendation,
)
from keeper.logic.guardrail import ClampDecision, clamp
from keeper.logic.accrual import INDEX_SCALE, compute_claimable, index_delta

__all__ = [
    "AdvisoryClient",
    "AdvisoryContext",
    "RecommendationValidator",
    "build_fallback_recommendation",
    "ClampDecision",
    "clamp",
    "INDEX_SCALE",
    "compute_claimable",
    "index_delta",
]
