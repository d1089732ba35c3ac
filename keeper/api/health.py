# ============================================================================
# Accrual Keeper v1.0.0
# Health API Endpoints - Liveness & Readiness
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Expose the keeper's health state to monitors and orchestrators
#
# Endpoints:
#   GET /health - Health snapshot (200 if ok, 503 if degraded or error)
#   GET /ready  - Process is up and serving
#
# The reporter is bound on app.state by create_health_app(); endpoints only
# ever read snapshot copies and never write health state.
#
# ============================================================================

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from services.health_reporter import HealthReporter, HealthState

# ============================================================================
# Router
# ============================================================================

router = APIRouter()


# ============================================================================
# Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Response model for the health snapshot."""
    model_config = ConfigDict(populate_by_name=True)

    status: HealthState
    uptime_seconds: int = Field(..., alias="uptimeSeconds")
    last_successful_update: Optional[int] = Field(None, alias="lastSuccessfulUpdate")
    consecutive_failures: int = Field(..., alias="consecutiveFailures")
    total_updates: int = Field(..., alias="totalUpdates")
    dry_run: bool = Field(..., alias="dryRun")


class ReadyResponse(BaseModel):
    """Response model for readiness."""
    ready: bool = True


# ============================================================================
# Dependencies
# ============================================================================

def get_health_reporter(request: Request) -> HealthReporter:
    return request.app.state.health_reporter


# ============================================================================
# Endpoints
# ============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse, "description": "Keeper degraded or in error"}},
    summary="Keeper Health",
    description=(
        "Returns the keeper's recent tick outcomes.\n\n"
        "**200** when status is `ok`, **503** when `degraded` "
        "(3+ consecutive failed ticks) or `error` (10+)."
    ),
    tags=["System"]
)
async def health(reporter: HealthReporter = Depends(get_health_reporter)):
    """
    Health snapshot endpoint.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: None
    Side Effects: None (snapshot read)
    """
    snapshot = reporter.snapshot()
    body = HealthResponse(
        status=snapshot.status,
        uptime_seconds=snapshot.uptime_seconds(reporter.now()),
        last_successful_update=snapshot.last_success_ts,
        consecutive_failures=snapshot.consecutive_failures,
        total_updates=snapshot.total_successes,
        dry_run=snapshot.dry_run,
    )
    return JSONResponse(
        status_code=200 if snapshot.is_ok else 503,
        content=body.model_dump(mode="json", by_alias=True),
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness",
    description="Returns 200 once the status endpoint is serving.",
    tags=["System"]
)
async def ready() -> ReadyResponse:
    return ReadyResponse()
