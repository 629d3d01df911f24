"""Database-backed dispatch queue store."""

import hashlib
import json
import logging
import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fixdispatch.config import Settings, get_settings
from fixdispatch.db.enums import ALLOWED_TRANSITIONS, DUE_STATUSES, DispatchStatus
from fixdispatch.db.models import DispatchItem, utcnow
from fixdispatch.dispatch.backoff import compute_backoff
from fixdispatch.schemas.dispatch import DispatchItemCreate

logger = logging.getLogger(__name__)

# Columns update_item() may touch; identity and payload columns are immutable
UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "attempts",
        "last_error",
        "last_status_code",
        "next_attempt_at",
        "sent_at",
        "instance_id",
    }
)


class InvalidTransitionError(ValueError):
    """Raised when an update would violate the dispatch state machine."""


def compute_payload_hash(payload: Mapping[str, Any]) -> str:
    """Compute a hash of the semantic payload.

    Stored for operators correlating duplicate submissions; never used to reject.
    """
    payload_json = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(payload_json.encode()).hexdigest()


async def create_item(
    session: AsyncSession,
    payload: DispatchItemCreate | Mapping[str, Any],
) -> DispatchItem:
    """Enqueue a fix action for delivery.

    Duplicate payloads are accepted; callers deduplicate if they need to.

    Args:
        session: Database session
        payload: Fix action fields

    Returns:
        Created DispatchItem in pending state, due immediately
    """
    if not isinstance(payload, DispatchItemCreate):
        payload = DispatchItemCreate.model_validate(payload)

    fields = payload.model_dump()
    now = utcnow()

    item = DispatchItem(
        **fields,
        payload_hash=compute_payload_hash(fields),
        status=DispatchStatus.PENDING.value,
        attempts=0,
        next_attempt_at=now,
        created_at=now,
        updated_at=now,
    )
    session.add(item)
    await session.flush()

    logger.debug(f"Enqueued dispatch item {item.id} for project {item.project_id}")
    return item


async def get_item(session: AsyncSession, item_id: uuid.UUID) -> DispatchItem | None:
    """Fetch a dispatch item by id."""
    stmt = select(DispatchItem).where(DispatchItem.id == item_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_items(
    session: AsyncSession,
    project_id: str | None = None,
    status: DispatchStatus | str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[DispatchItem]:
    """List dispatch items, newest first."""
    stmt = select(DispatchItem).order_by(DispatchItem.created_at.desc())

    if project_id:
        stmt = stmt.where(DispatchItem.project_id == project_id)
    if status:
        stmt = stmt.where(DispatchItem.status == DispatchStatus(status).value)

    stmt = stmt.limit(limit).offset(offset)

    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_item(
    session: AsyncSession,
    item_id: uuid.UUID,
    **fields: Any,
) -> DispatchItem | None:
    """Merge fields into a dispatch item and refresh updated_at.

    Sent and dead items are terminal: the update is ignored and the item is
    returned unchanged.

    Returns:
        The item, or None if it does not exist

    Raises:
        InvalidTransitionError: If the status change is not allowed or
            attempts would decrease
        ValueError: If a field is not updatable
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    item = await get_item(session, item_id)
    if item is None:
        return None

    current = DispatchStatus(item.status)
    if current.is_terminal:
        logger.warning(
            f"Ignoring update of dispatch item {item_id} in terminal state {current.value}"
        )
        return item

    if "status" in fields:
        target = DispatchStatus(fields["status"])
        if target != current and target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Dispatch item {item_id} cannot move from {current.value} to {target.value}"
            )
        fields["status"] = target.value

    if "attempts" in fields and fields["attempts"] < item.attempts:
        raise InvalidTransitionError(
            f"Dispatch item {item_id} attempts cannot decrease "
            f"({item.attempts} -> {fields['attempts']})"
        )

    for name, value in fields.items():
        setattr(item, name, value)
    item.updated_at = utcnow()

    await session.flush()
    return item


async def get_due_items(
    session: AsyncSession,
    limit: int = 10,
    now: datetime | None = None,
) -> list[DispatchItem]:
    """Get items ready for a delivery attempt.

    Highest priority first, oldest first within a priority. Rows are locked
    with SKIP LOCKED where the backend supports it.

    Args:
        session: Database session
        limit: Maximum number of items to return
        now: Reference time (defaults to the current time)

    Returns:
        Due pending/failed items
    """
    now = now or utcnow()

    stmt = (
        select(DispatchItem)
        .where(
            DispatchItem.status.in_([status.value for status in DUE_STATUSES]),
            DispatchItem.next_attempt_at <= now,
        )
        .order_by(DispatchItem.priority.desc(), DispatchItem.created_at.asc())
        .limit(limit)
        .with_for_update(skip_locked=True)
    )

    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_by_status(
    session: AsyncSession,
    project_id: str | None = None,
) -> dict[str, int]:
    """Count items per status, including zero counts."""
    stmt = select(DispatchItem.status, func.count(DispatchItem.id)).group_by(DispatchItem.status)
    if project_id:
        stmt = stmt.where(DispatchItem.project_id == project_id)

    result = await session.execute(stmt)
    counts = {status.value: 0 for status in DispatchStatus}
    counts.update({row[0]: row[1] for row in result.fetchall()})
    return counts


async def mark_in_flight(
    session: AsyncSession,
    item_id: uuid.UUID,
    instance_id: str | None = None,
) -> DispatchItem | None:
    """Claim an item for an attempt and count the attempt."""
    item = await get_item(session, item_id)
    if item is None:
        return None

    return await update_item(
        session,
        item_id,
        status=DispatchStatus.IN_FLIGHT,
        attempts=item.attempts + 1,
        instance_id=instance_id,
    )


async def mark_sent(
    session: AsyncSession,
    item_id: uuid.UUID,
    status_code: int | None = None,
) -> DispatchItem | None:
    """Mark an item as delivered."""
    item = await get_item(session, item_id)
    if item is None:
        return None
    if item.is_terminal:
        logger.warning(f"Not marking dispatch item {item_id} sent: already {item.status}")
        return item

    item = await update_item(
        session,
        item_id,
        status=DispatchStatus.SENT,
        sent_at=utcnow(),
        next_attempt_at=None,
        last_error=None,
        last_status_code=status_code,
    )
    logger.info(f"Dispatch item {item_id} sent after {item.attempts} attempt(s)")
    return item


async def mark_failed(
    session: AsyncSession,
    item_id: uuid.UUID,
    error: str,
    status_code: int | None = None,
    settings: Settings | None = None,
) -> DispatchItem | None:
    """Record a failed attempt and reschedule or dead-letter the item."""
    settings = settings or get_settings()

    item = await get_item(session, item_id)
    if item is None:
        logger.error(f"Dispatch item {item_id} not found")
        return None

    if item.is_terminal:
        logger.warning(f"Not recording failure for dispatch item {item_id}: already {item.status}")
        return item

    if item.attempts >= settings.max_attempts:
        item = await update_item(
            session,
            item_id,
            status=DispatchStatus.DEAD,
            last_error=error,
            last_status_code=status_code,
            next_attempt_at=None,
        )
        logger.warning(f"Dispatch item {item_id} dead-lettered after {item.attempts} attempts")
        return item

    next_attempt = utcnow() + compute_backoff(item.attempts, settings.backoff_schedule)
    item = await update_item(
        session,
        item_id,
        status=DispatchStatus.FAILED,
        last_error=error,
        last_status_code=status_code,
        next_attempt_at=next_attempt,
    )
    logger.info(
        f"Dispatch item {item_id} failed (attempt {item.attempts}), next attempt at {next_attempt}"
    )
    return item
