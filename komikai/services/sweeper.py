"""Periodic sweep background worker.

asyncio background task started from the FastAPI lifespan. Runs a store's
``sweep()`` on a fixed interval, independent of request traffic. The sweep
itself is a short synchronous pass under the store's lock; the worker only
holds the lock for that pass, never across the sleep.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime

from komikai.core.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """Background worker that periodically calls a sweep function.

    Lifecycle:
    - start() creates an asyncio task that runs the sweep loop.
    - stop() cancels the task and waits for it to finish.
    - run_once() executes a single pass (for testing).

    Args:
        name: Label used in log messages.
        sweep: Zero-argument callable returning the number of removed items.
        interval_seconds: Seconds between passes.
        clock: Time source for ``last_run_at``.
    """

    def __init__(
        self,
        name: str,
        sweep: Callable[[], int],
        *,
        interval_seconds: float,
        clock: Clock = utc_now,
    ) -> None:
        if interval_seconds <= 0:
            msg = f"interval_seconds must be positive. Got: {interval_seconds}"
            raise ValueError(msg)
        self._name = name
        self._sweep = sweep
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._last_run_at: datetime | None = None
        self._running = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_running(self) -> bool:
        """Whether the background task is currently active."""
        return self._running and self._task is not None and not self._task.done()

    @property
    def last_run_at(self) -> datetime | None:
        """Timestamp of the most recent completed pass."""
        return self._last_run_at

    def start(self) -> None:
        """Start the background sweep loop.

        Creates an asyncio task. No-op if already running.
        Must be called from an async context (running event loop).
        """
        if self.is_running:
            logger.warning("%s sweeper already running", self._name)
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "%s sweeper started (interval=%ss)", self._name, self._interval_seconds
        )

    async def stop(self) -> None:
        """Stop the background sweep loop.

        Cancels the task and waits for it to finish.
        """
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("%s sweeper stopped", self._name)

    def run_once(self) -> int:
        """Execute a single sweep pass.

        Returns:
            Number of items the sweep removed.
        """
        removed = self._sweep()
        self._last_run_at = self._clock()
        return removed

    async def _run_loop(self) -> None:
        """Background loop: sleep → sweep → repeat."""
        try:
            while self._running:
                await asyncio.sleep(self._interval_seconds)
                try:
                    removed = self.run_once()
                    if removed:
                        logger.info("%s sweep removed %d items", self._name, removed)
                except Exception:  # noqa: BLE001
                    logger.exception("Error in %s sweep", self._name)
        except asyncio.CancelledError:
            logger.debug("%s sweep loop cancelled", self._name)
            raise
