"""
Background expiration sweep.

A cancellable asyncio task started and stopped by the application
lifespan. A failed pass is logged and the task simply waits for the next
period.
"""
import asyncio
from collections.abc import Callable

import structlog

from cexpi.application.use_cases.sweep_expired_listings import SweepExpiredListings, SweepResult

logger = structlog.get_logger(__name__)


class ExpirationSweeper:
    """Runs SweepExpiredListings every ``interval_seconds`` until stopped."""

    def __init__(
        self,
        sweep_factory: Callable[[], SweepExpiredListings],
        interval_seconds: float,
        run_on_startup: bool = False,
    ) -> None:
        self._sweep_factory = sweep_factory
        self._interval = interval_seconds
        self._run_on_startup = run_on_startup
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="expiration-sweeper")
        logger.info("expiration_sweeper_started", interval_seconds=self._interval)

    async def stop(self, timeout: float = 10.0) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            # A pass is still running; cancel it rather than block shutdown
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("expiration_sweeper_stopped")

    async def run_once(self) -> SweepResult | None:
        try:
            result = await self._sweep_factory().execute()
        except Exception:
            logger.exception("expiration_sweep_failed")
            return None

        logger.info(
            "expiration_sweep_completed",
            expired_listings=len(result.expired_listing_ids),
            abandoned_intents=result.abandoned_intents,
            repaired_incidents=result.repaired_incidents,
        )
        return result

    async def _run(self) -> None:
        if self._run_on_startup:
            await self.run_once()
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                await self.run_once()
