"""
============================================================================
Accrual Keeper v1.0.0
Health Application Factory - Status Endpoint
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: A HealthReporter owned by the reconciliation loop
Side Effects: None (read-only surface)

Routes:
    GET /health   - Health snapshot (200 ok / 503 otherwise)
    GET /ready    - Readiness
    GET /metrics  - Prometheus exposition

============================================================================
"""

from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from keeper import __version__
from keeper.api.health import router as health_router
from services.health_reporter import HealthReporter

logger = logging.getLogger(__name__)


def create_health_app(reporter: HealthReporter) -> FastAPI:
    """
    Build the status application bound to a reporter.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: reporter is the loop's single-writer HealthReporter
    Side Effects: None
    """
    app = FastAPI(
        title="Accrual Keeper Health",
        description=(
            "Status surface of the accrual index keeper.\n\n"
            "**SOVEREIGN MANDATE:** The advisor suggests. The guardrail decides. "
            "The ledger enforces."
        ),
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )
    app.state.health_reporter = reporter

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        error_code = "SYS-500"
        logger.error(f"[{error_code}] Unhandled exception | path={request.url.path} | error={exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error_code": error_code,
                "message": "Internal server error. This incident has been logged.",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )

    app.include_router(health_router)

    @app.get(
        "/metrics",
        summary="Prometheus Metrics",
        description="Exposes Prometheus metrics for observability.",
        tags=["Observability"]
    )
    async def metrics():
        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )

    return app
