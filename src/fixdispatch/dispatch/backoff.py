"""Capped exponential backoff for dispatch retries."""

from collections.abc import Sequence
from datetime import timedelta

# Seconds to wait after the Nth failed attempt; the last entry repeats.
BACKOFF_SCHEDULE: tuple[int, ...] = (30, 60, 120, 240, 480, 900)

MAX_ATTEMPTS = 6


def compute_backoff(attempt: int, schedule: Sequence[int] = BACKOFF_SCHEDULE) -> timedelta:
    """Return how long to wait before retrying after ``attempt`` failures.

    Args:
        attempt: Number of attempts made so far (1-based)
        schedule: Delays in seconds indexed by attempt number

    Returns:
        Delay before the item becomes due again

    Raises:
        ValueError: If attempt is not positive or the schedule is empty
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    if not schedule:
        raise ValueError("backoff schedule is empty")

    index = min(attempt, len(schedule)) - 1
    return timedelta(seconds=schedule[index])
