"""Dispatch item Pydantic schemas."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_PRIORITY = 0


class DispatchItemCreate(BaseModel):
    """Fields accepted at the enqueue boundary.

    The queue never interprets these; they are stored and forwarded verbatim.
    """

    project_id: str = Field(..., min_length=1, max_length=255)
    url: str | None = None
    field: str | None = Field(None, max_length=255)
    value: Any = None
    priority: int = DEFAULT_PRIORITY
    requested_by: str | None = Field(None, max_length=255)
    platform: str | None = Field(None, max_length=100)
    external_id: str | None = Field(None, max_length=255)
    notes: str | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def default_priority(cls, value: Any) -> Any:
        return DEFAULT_PRIORITY if value is None else value


class DispatchItemResponse(BaseModel):
    """Schema for dispatch item response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: str
    url: str | None
    field: str | None
    value: Any
    priority: int
    requested_by: str | None
    platform: str | None
    external_id: str | None
    notes: str | None
    payload_hash: str
    status: str
    attempts: int
    last_error: str | None
    last_status_code: int | None
    next_attempt_at: datetime | None
    sent_at: datetime | None
    instance_id: str | None
    created_at: datetime
    updated_at: datetime


class ItemResultResponse(BaseModel):
    """Outcome of one processed item in a batch."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    success: bool
    dead_lettered: bool = False
    attempts: int
    error: str | None = None
    status_code: int | None = None
    next_attempt_at: datetime | None = None


class RunResponse(BaseModel):
    """Result of a manually triggered batch."""

    processed: int
    sent: int
    failed: int
    dead: int
    results: list[ItemResultResponse]
