"""Dispatch queue observability endpoints."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fixdispatch.api.deps import OperatorAuth, Worker
from fixdispatch.db.enums import DispatchStatus
from fixdispatch.db.session import get_session
from fixdispatch.dispatch.store import count_by_status, get_item, list_items
from fixdispatch.metrics import record_queue_depth
from fixdispatch.schemas import (
    DispatchItemResponse,
    ErrorResponse,
    ItemResultResponse,
    QueueStats,
    RunResponse,
)

router = APIRouter(prefix="/dispatch", tags=["dispatch"])


@router.get("/stats", response_model=QueueStats)
async def queue_stats(
    _auth: OperatorAuth,
    session: AsyncSession = Depends(get_session),
    project_id: str | None = Query(None, description="Limit counts to one project"),
) -> QueueStats:
    """Count dispatch items by status."""
    counts = await count_by_status(session, project_id=project_id)
    if project_id is None:
        record_queue_depth(counts)
    return QueueStats(**counts)


@router.get("/items", response_model=list[DispatchItemResponse])
async def list_dispatch_items(
    _auth: OperatorAuth,
    session: AsyncSession = Depends(get_session),
    project_id: str | None = Query(None),
    status_filter: DispatchStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> list[DispatchItemResponse]:
    """List dispatch items, newest first."""
    items = await list_items(
        session,
        project_id=project_id,
        status=status_filter,
        limit=limit,
        offset=offset,
    )
    return [DispatchItemResponse.model_validate(item) for item in items]


@router.get(
    "/items/{item_id}",
    response_model=DispatchItemResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_dispatch_item(
    item_id: uuid.UUID,
    _auth: OperatorAuth,
    session: AsyncSession = Depends(get_session),
) -> DispatchItemResponse:
    """Get a single dispatch item."""
    item = await get_item(session, item_id)
    if not item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Dispatch item not found",
        )
    return DispatchItemResponse.model_validate(item)


@router.post("/run", response_model=RunResponse)
async def run_batch(
    _auth: OperatorAuth,
    worker: Worker,
    limit: int | None = Query(None, ge=1, le=100, description="Items to process"),
) -> RunResponse:
    """Process one batch of due items now."""
    results = await worker.run_once(limit)

    sent = sum(1 for r in results if r.success)
    dead = sum(1 for r in results if r.dead_lettered)

    return RunResponse(
        processed=len(results),
        sent=sent,
        failed=len(results) - sent - dead,
        dead=dead,
        results=[ItemResultResponse.model_validate(r) for r in results],
    )
