"""Pydantic schemas for API request/response validation."""

from fixdispatch.schemas.common import (
    ErrorResponse,
    HealthResponse,
    QueueStats,
    ReadyResponse,
)
from fixdispatch.schemas.dispatch import (
    DEFAULT_PRIORITY,
    DispatchItemCreate,
    DispatchItemResponse,
    ItemResultResponse,
    RunResponse,
)

__all__ = [
    "DEFAULT_PRIORITY",
    "DispatchItemCreate",
    "DispatchItemResponse",
    "ErrorResponse",
    "HealthResponse",
    "ItemResultResponse",
    "QueueStats",
    "ReadyResponse",
    "RunResponse",
]
