"""Common Pydantic schemas."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    instance_id: str
    endpoint_configured: bool
    scheduler_enabled: bool


class QueueStats(BaseModel):
    """Dispatch queue statistics."""

    pending: int = 0
    in_flight: int = 0
    sent: int = 0
    failed: int = 0
    dead: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.in_flight + self.sent + self.failed + self.dead


class ReadyResponse(BaseModel):
    """Readiness check response."""

    status: str = "ok"
    database: str = "ok"
    queue: QueueStats | None = None  # Optional queue statistics


class ErrorResponse(BaseModel):
    """Error response."""

    detail: str
