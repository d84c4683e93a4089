"""
Background sweeper that pauses abandoned running timers.

An agent that crashes or loses its network stops sending heartbeats, but its
timer would keep running. The sweeper pauses such entries as of their last
activity.
"""

import asyncio
import structlog
from sqlalchemy.orm import sessionmaker

from agent_gateway.core.config import settings
from agent_gateway.database.connection import SessionLocal
from agent_gateway.services.timer import TimerService

logger = structlog.get_logger(__name__)


class StaleEntrySweeper:
    """Periodically pauses running entries with no recent activity"""

    def __init__(self, session_factory: sessionmaker = SessionLocal,
                 interval_seconds: int = None, threshold_seconds: int = None):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.stale_sweep_interval_seconds
        self.threshold_seconds = threshold_seconds or settings.stale_entry_threshold_seconds
        self.running = False
        self._task = None

    async def start(self):
        """Start the sweep loop as a background task"""
        self.running = True
        logger.info("Starting stale entry sweeper",
                    interval_seconds=self.interval_seconds, threshold_seconds=self.threshold_seconds)
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self):
        """Stop the sweep loop"""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Stale entry sweeper stopped")

    async def _sweep_loop(self):
        """Main sweep loop"""
        while self.running:
            try:
                await asyncio.to_thread(self.sweep_once)
            except Exception as e:
                logger.error("Error in stale entry sweep", error=str(e))
            await asyncio.sleep(self.interval_seconds)

    def sweep_once(self, now=None) -> int:
        """Run one sweep; returns the number of entries paused"""
        db = self.session_factory()
        try:
            paused = TimerService(db).sweep_stale(self.threshold_seconds, now=now)
            if paused:
                logger.info("Paused stale time entries", count=len(paused))
            return len(paused)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
