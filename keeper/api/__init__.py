# ============================================================================
# Accrual Keeper v1.0.0
# API Module - Health Surface
# ============================================================================

from keeper.api.health import router as health_router

__all__ = ["health_router"]
