"""SQLAlchemy database models."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from fixdispatch.db.enums import DispatchStatus


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all models."""

    # Use JSON with JSONB variant for PostgreSQL (works on SQLite too)
    type_annotation_map = {
        dict: JSON().with_variant(JSONB(), "postgresql"),
        uuid.UUID: Uuid,
    }


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps.

    Timestamps are assigned in application time with microsecond precision so
    that created_at is usable as a FIFO tie-breaker on every backend.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class DispatchItem(Base, TimestampMixin):
    """One durable delivery intent for a fix action."""

    __tablename__ = "dispatch_items"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Caller-supplied fix action, forwarded as-is
    project_id: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    field: Mapped[str | None] = mapped_column(String(255), nullable=True)
    value: Mapped[Any] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
    priority: Mapped[int] = mapped_column(default=0, nullable=False)
    requested_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    platform: Mapped[str | None] = mapped_column(String(100), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Delivery state, owned by the worker
    status: Mapped[str] = mapped_column(
        String(20), default=DispatchStatus.PENDING.value, nullable=False, index=True
    )  # pending, in_flight, sent, failed, dead
    attempts: Mapped[int] = mapped_column(default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_status_code: Mapped[int | None] = mapped_column(nullable=True)
    next_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    instance_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (
        Index("ix_dispatch_items_status_next_attempt", "status", "next_attempt_at"),
        Index("ix_dispatch_items_project_created", "project_id", "created_at"),
        Index("ix_dispatch_items_priority_created", "priority", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return DispatchStatus(self.status).is_terminal

    def __repr__(self) -> str:
        return f"<DispatchItem {self.id} status={self.status} attempts={self.attempts}>"
