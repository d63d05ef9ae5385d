"""Expired token sweep background worker.

asyncio background task that deletes expired account tokens on a
configurable interval. The sweep only removes rows that can no longer
validate, so it is safe to run alongside any account or token operation.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from turnstile.core.config import settings
from turnstile.services.token_service import TokenService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenSweepWorker:
    """Background worker that periodically deletes expired tokens.

    Lifecycle:
    - start() creates an asyncio task that runs the sweep loop.
    - stop() cancels the task and waits for graceful shutdown.
    - run_once() executes a single sweep (for testing and scripts).

    Args:
        session_factory: Async session factory for DB access.
        interval_seconds: Seconds between sweeps.
        clock: Returns the current time. Defaults to UTC wall clock.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        interval_seconds: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else settings.token_sweep_interval_seconds
        )
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._last_run_at: datetime | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the background task is currently active."""
        return self._running and self._task is not None and not self._task.done()

    @property
    def last_run_at(self) -> datetime | None:
        """Timestamp of the most recent completed sweep."""
        return self._last_run_at

    def start(self) -> None:
        """Start the background sweep loop.

        Creates an asyncio task. No-op if already running.
        Must be called from an async context (running event loop).
        """
        if self.is_running:
            logger.warning("Token sweep worker already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Token sweep worker started (interval=%ds)", self._interval_seconds)

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
        logger.info("Token sweep worker stopped")

    async def run_once(self) -> int:
        """Execute a single sweep in its own session and commit it.

        Returns:
            Number of tokens deleted.
        """
        async with self._session_factory() as db:
            deleted = await TokenService(db, clock=self._clock).delete_expired()
            await db.commit()
        self._last_run_at = self._clock()
        return deleted

    async def _run_loop(self) -> None:
        """Background loop: run_once → sleep → repeat."""
        try:
            while self._running:
                try:
                    deleted = await self.run_once()
                    logger.info("Token sweep: %d expired tokens deleted", deleted)
                except Exception:  # noqa: BLE001
                    logger.exception("Error in token sweep")
                await asyncio.sleep(self._interval_seconds)
        except asyncio.CancelledError:
            logger.debug("Token sweep loop cancelled")
            raise
