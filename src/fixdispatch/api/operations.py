"""Operations API endpoints (health, ready)."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from fixdispatch import __version__
from fixdispatch.config import Settings, get_settings
from fixdispatch.db.session import get_session
from fixdispatch.dispatch.store import count_by_status
from fixdispatch.metrics import record_queue_depth
from fixdispatch.schemas import HealthResponse, QueueStats, ReadyResponse

router = APIRouter(tags=["operations"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """Health check endpoint - returns server status."""
    return HealthResponse(
        status="ok",
        version=__version__,
        instance_id=settings.instance_id,
        endpoint_configured=bool(settings.dispatch_endpoint_url),
        scheduler_enabled=settings.scheduler_enabled,
    )


@router.get("/ready", response_model=ReadyResponse)
async def ready_check(
    session: AsyncSession = Depends(get_session),
    include_queue: bool = Query(False, description="Include queue statistics"),
) -> ReadyResponse:
    """Readiness check endpoint - verifies database connectivity."""
    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not ready",
        ) from e

    response = ReadyResponse(status="ok", database="ok")

    if include_queue:
        counts = await count_by_status(session)
        record_queue_depth(counts)
        response.queue = QueueStats(**counts)

    return response
