"""Retention sweeper: periodic time-based purge of old click events."""

import asyncio
from datetime import timedelta

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clicktrail.core.clock import utcnow
from clicktrail.core.config import get_settings
from clicktrail.core.database import async_session_factory
from clicktrail.core.observability import record_retention_deleted
from clicktrail.exceptions import PersistenceError
from clicktrail.services.click_ledger import purge_clicks

logger = structlog.get_logger()


class RetentionSweeper:
    """Delete click events older than the retention period.

    Complements the per-link cap enforced on every append. Disabled when
    ``retention_days`` is 0.

    Usage:
        sweeper = RetentionSweeper(async_session_factory, retention_days=90)
        await sweeper.start()  # Starts background loop
        # ... later ...
        await sweeper.stop()

        # Or run manually:
        await sweeper.sweep()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retention_days: int = 0,
        interval: float = 3600.0,
    ):
        """Initialize the sweeper.

        Args:
            session_factory: Session factory for the click ledger.
            retention_days: Age in days after which events are purged.
            interval: Seconds between sweeps.
        """
        self._session_factory = session_factory
        self._retention_days = retention_days
        self._interval = interval
        self._running = False
        self._task: asyncio.Task | None = None
        self._runs = 0
        self._deleted = 0

    @property
    def enabled(self) -> bool:
        return self._retention_days > 0

    async def start(self) -> None:
        """Start the background sweep loop."""
        if self._running or not self.enabled:
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "Retention sweeper started",
            retention_days=self._retention_days,
            interval=self._interval,
        )

    async def stop(self) -> None:
        """Stop the background sweep loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Retention sweeper stopped", runs=self._runs, deleted=self._deleted)

    async def _sweep_loop(self) -> None:
        try:
            while self._running:
                await asyncio.sleep(self._interval)
                try:
                    await self.sweep()
                except PersistenceError as e:
                    logger.error("Retention sweep failed", error=str(e))
        except asyncio.CancelledError:
            pass

    async def sweep(self) -> int:
        """Purge events older than the retention period.

        Returns:
            Number of events deleted.
        """
        if not self.enabled:
            return 0

        cutoff = utcnow() - timedelta(days=self._retention_days)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    deleted = await purge_clicks(session, before=cutoff)
        except SQLAlchemyError as e:
            raise PersistenceError("Retention sweep failed") from e

        self._runs += 1
        self._deleted += deleted
        record_retention_deleted("sweep", deleted)
        logger.info("Retention sweep complete", cutoff=cutoff.isoformat(), deleted=deleted)
        return deleted

    @property
    def stats(self) -> dict:
        """Get sweeper statistics."""
        return {
            "enabled": self.enabled,
            "running": self._running,
            "retention_days": self._retention_days,
            "runs": self._runs,
            "deleted": self._deleted,
        }


# Global sweeper instance
_sweeper: RetentionSweeper | None = None


def get_retention_sweeper() -> RetentionSweeper:
    """Get the global sweeper instance, creating it if necessary."""
    global _sweeper
    if _sweeper is None:
        settings = get_settings()
        _sweeper = RetentionSweeper(
            async_session_factory,
            retention_days=settings.click_retention_days,
            interval=settings.retention_sweep_interval,
        )
    return _sweeper


async def start_retention_sweeper() -> None:
    """Start the global sweeper."""
    await get_retention_sweeper().start()


async def stop_retention_sweeper() -> None:
    """Stop the global sweeper."""
    await get_retention_sweeper().stop()
