"""Dispatch worker: drives due items through the delivery state machine."""

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from fixdispatch.config import Settings, get_settings
from fixdispatch.db.enums import DUE_STATUSES, DispatchStatus
from fixdispatch.db.session import async_session
from fixdispatch.dispatch.client import (
    DeliveryResult,
    DispatchClient,
    DispatchConfigError,
    build_envelope,
)
from fixdispatch.dispatch.store import (
    get_due_items,
    get_item,
    mark_failed,
    mark_in_flight,
    mark_sent,
)
from fixdispatch.metrics import DISPATCH_ATTEMPTS_TOTAL, DISPATCH_DURATION

logger = logging.getLogger(__name__)


@dataclass
class ItemResult:
    """Per-item outcome of a processing attempt."""

    id: uuid.UUID
    success: bool
    attempts: int
    dead_lettered: bool = False
    error: str | None = None
    status_code: int | None = None
    next_attempt_at: datetime | None = None


async def process_item(
    session: AsyncSession,
    item_id: uuid.UUID,
    client: DispatchClient,
    settings: Settings,
) -> ItemResult | None:
    """Run one delivery attempt for an item.

    The in-flight transition and attempt count are committed before the
    network call, and the outcome is committed afterwards.

    Args:
        session: Database session (committed by this function)
        item_id: Item to deliver
        client: Delivery client
        settings: Application settings

    Returns:
        ItemResult, or None if the item is missing or not due-eligible
    """
    item = await get_item(session, item_id)
    if item is None:
        logger.warning(f"Dispatch item {item_id} not found")
        return None
    if DispatchStatus(item.status) not in DUE_STATUSES:
        logger.warning(f"Skipping dispatch item {item_id} in state {item.status}")
        return None

    item = await mark_in_flight(session, item_id, settings.instance_id)
    await session.commit()

    attempt = item.attempts
    logger.debug(f"Delivering dispatch item {item_id} (attempt {attempt})")

    try:
        result = await client.deliver(build_envelope(item, attempt))
    except DispatchConfigError as e:
        logger.error(f"Configuration error delivering dispatch item {item_id}: {e}")
        result = DeliveryResult(success=False, error=f"Configuration error: {e}")
    else:
        # No request was made for a configuration error
        DISPATCH_DURATION.observe(result.duration)

    if result.success:
        await mark_sent(session, item_id, result.status_code)
        await session.commit()
        DISPATCH_ATTEMPTS_TOTAL.labels(outcome="sent").inc()
        return ItemResult(
            id=item_id,
            success=True,
            attempts=attempt,
            status_code=result.status_code,
        )

    error = result.error or "Unknown error"
    item = await mark_failed(session, item_id, error, result.status_code, settings)
    await session.commit()

    dead_lettered = item.status == DispatchStatus.DEAD.value
    DISPATCH_ATTEMPTS_TOTAL.labels(outcome="dead" if dead_lettered else "failed").inc()

    return ItemResult(
        id=item_id,
        success=False,
        attempts=attempt,
        dead_lettered=dead_lettered,
        error=error,
        status_code=result.status_code,
        next_attempt_at=item.next_attempt_at,
    )


class DispatchWorker:
    """Periodic scheduler that delivers due dispatch items one at a time.

    Each instance owns its lifecycle: start() spawns the loop task, stop()
    signals it and waits for the current batch to finish. run_once() is
    guarded by a lock, so a manual trigger never overlaps a scheduled tick.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        session_factory: Callable[[], AsyncSession] | None = None,
        client: DispatchClient | None = None,
    ):
        self.settings = settings or get_settings()
        self._session_factory = session_factory or async_session
        self.client = client or DispatchClient(self.settings)
        self._stop_event = asyncio.Event()
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, limit: int | None = None) -> list[ItemResult]:
        """Process up to ``limit`` due items sequentially.

        Returns:
            Results in processing order (priority desc, then oldest first)
        """
        if limit is None:
            limit = self.settings.scheduler_batch_size

        async with self._lock:
            async with self._session_factory() as session:
                items = await get_due_items(session, limit=limit)
                item_ids = [item.id for item in items]
                await session.commit()

            results: list[ItemResult] = []
            for item_id in item_ids:
                async with self._session_factory() as session:
                    try:
                        result = await process_item(session, item_id, self.client, self.settings)
                    except Exception:
                        await session.rollback()
                        logger.exception(f"Processing dispatch item {item_id} failed")
                        continue
                if result is not None:
                    results.append(result)

            return results

    async def tick(self) -> list[ItemResult]:
        """Run one scheduled batch and log what happened."""
        results = await self.run_once(self.settings.scheduler_batch_size)

        if not results:
            logger.debug("No dispatch items due")
            return results

        sent = sum(1 for r in results if r.success)
        dead = sum(1 for r in results if r.dead_lettered)
        failed = len(results) - sent - dead
        logger.info(
            f"Processed {len(results)} dispatch items ({sent} sent, {failed} failed, {dead} dead)"
        )
        return results

    async def run(self) -> None:
        """Run the scheduler loop until stop() is called."""
        self._stop_event.clear()
        logger.info(
            f"Dispatch worker started (instance: {self.settings.instance_id}, "
            f"interval: {self.settings.scheduler_interval}s, "
            f"batch size: {self.settings.scheduler_batch_size})"
        )

        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Error in dispatch worker loop")

            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.settings.scheduler_interval,
                )

        logger.info("Dispatch worker stopped")

    def start(self) -> bool:
        """Start the scheduler in the background.

        Returns:
            True if a loop was started, False if disabled or already running
        """
        if not self.settings.scheduler_enabled:
            logger.info("Dispatch scheduler disabled by configuration")
            return False

        if self.running:
            logger.warning("Dispatch worker already running")
            return False

        self._task = asyncio.create_task(self.run())
        return True

    async def stop(self, timeout: float | None = None) -> None:
        """Stop the scheduler and release the HTTP client.

        The in-progress batch is allowed to finish; after ``timeout`` seconds
        the loop task is cancelled instead.
        """
        self._stop_event.set()

        if self._task is not None and not self._task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
            except TimeoutError:
                logger.warning("Dispatch worker did not stop in time, cancelling")
                self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task

        await self.client.aclose()

    async def wait(self) -> None:
        """Wait for the scheduler loop to finish."""
        if self._task:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
