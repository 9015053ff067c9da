"""Health check and metrics router."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import StoreUnavailableError
from ..core.observability import SERVICE_VERSION, get_prometheus_metrics
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])
metrics_router = APIRouter(tags=["Observability"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping() -> JSONResponse:
    """
    Health check endpoint.

    Returns current service status and timestamp.
    """
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=datetime.now(timezone.utc),
        version=SERVICE_VERSION
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )


@router.post("/ready", response_model=HealthResponse)
async def health_ready(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """Readiness check: the booking store must answer."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Readiness check failed", extra={"error": str(e)})
        raise StoreUnavailableError(operation="readiness") from e

    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=datetime.now(timezone.utc),
        version=SERVICE_VERSION
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@metrics_router.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Booking lifecycle counters in Prometheus text format",
    response_class=Response,
)
async def metrics():
    return Response(
        content=get_prometheus_metrics(),
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )
