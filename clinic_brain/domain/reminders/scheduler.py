"""
Reminder scheduler - in-process loop running the reminder cycle every interval
"""

import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...config import REMINDER_CHECK_INTERVAL_MS
from ...database import SessionLocal
from ..messaging.service import MessagingService
from .service import ReminderCycleResult, run_reminder_cycle

logger = logging.getLogger(__name__)


class ReminderScheduler:
    """
    Runs one reminder cycle immediately and then once per interval.

    A cycle runs in a worker thread with its own event loop, so the blocking
    database calls never stall the web server's loop. ``running`` only
    prevents a cycle from overlapping the previous one in this process.
    Other sweeps (another process, the arq cron) cannot double-send because
    each reminder is claimed in the database before it is sent.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        messaging: Optional[MessagingService] = None,
        interval_ms: int = REMINDER_CHECK_INTERVAL_MS,
    ):
        self.session_factory = session_factory
        self.messaging = messaging or MessagingService()
        self.interval_seconds = interval_ms / 1000
        self.running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def started(self) -> bool:
        return self._task is not None and not self._task.done()

    def _run_cycle(self) -> Optional[ReminderCycleResult]:
        db = self.session_factory()
        try:
            return asyncio.run(run_reminder_cycle(db, self.messaging))
        except Exception as e:
            logger.error(f"❌ Reminder cycle failed: {e}")
            db.rollback()
            return None
        finally:
            db.close()

    async def run_once(self) -> Optional[ReminderCycleResult]:
        """Run a single cycle; returns None when the previous one is still running"""
        if self.running:
            logger.warning("⚠️ Reminder cycle still running, skipping this tick")
            return None

        self.running = True
        try:
            # Run in thread pool to not block the event loop
            return await asyncio.to_thread(self._run_cycle)
        finally:
            self.running = False

    async def run_forever(self):
        """Main loop - runs every interval until cancelled"""
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self):
        if self.started:
            return
        logger.info(
            f"🚀 Reminder scheduler started (every {self.interval_seconds:g}s). "
            "Assumes a single scheduler per process; reminders are claimed before sending."
        )
        self._task = asyncio.create_task(self.run_forever())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("👋 Reminder scheduler stopped")
