"""Database enum types for consistent status values."""

from enum import Enum


class DispatchStatus(str, Enum):
    """Lifecycle states of a dispatch item."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SENT = "sent"
    FAILED = "failed"
    DEAD = "dead"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({DispatchStatus.SENT, DispatchStatus.DEAD})

# Statuses the worker may pick up once next_attempt_at has elapsed
DUE_STATUSES = (DispatchStatus.PENDING, DispatchStatus.FAILED)

ALLOWED_TRANSITIONS: dict[DispatchStatus, frozenset[DispatchStatus]] = {
    DispatchStatus.PENDING: frozenset({DispatchStatus.IN_FLIGHT}),
    DispatchStatus.IN_FLIGHT: frozenset(
        {DispatchStatus.SENT, DispatchStatus.FAILED, DispatchStatus.DEAD}
    ),
    DispatchStatus.FAILED: frozenset({DispatchStatus.IN_FLIGHT}),
    DispatchStatus.SENT: frozenset(),
    DispatchStatus.DEAD: frozenset(),
}
