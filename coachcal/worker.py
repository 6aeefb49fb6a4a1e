# coachcal/worker.py
"""
Reminder worker: polls due reminders and publishes them as
``appointment_reminder_time`` events.

Run with ``coachcal-reminder-worker`` (or ``python -m coachcal.worker``).
"""
from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import asyncio
import signal
from typing import Optional

from coachcal.core.config import settings
from coachcal.core.logging import get_logger, setup_logging
from coachcal.db.session import AsyncSessionLocal
from coachcal.services.events import EventPublisher, get_event_publisher
from coachcal.services.redis_client import close_redis_client
from coachcal.services.reminders import dispatch_due_reminders

logger = get_logger("worker")


async def run_once(publisher: Optional[EventPublisher] = None, session_factory=AsyncSessionLocal) -> int:
    publisher = publisher or get_event_publisher()
    async with session_factory() as db:
        return await dispatch_due_reminders(db, publisher)


async def run_forever(stop: asyncio.Event, poll_seconds: Optional[int] = None) -> None:
    poll_seconds = poll_seconds or settings.REMINDER_POLL_SECONDS
    logger.info("reminder_worker_started", poll_seconds=poll_seconds)
    while not stop.is_set():
        try:
            await run_once()
        except Exception as e:
            logger.error("reminder_poll_failed", error=str(e), error_type=type(e).__name__)
        try:
            await asyncio.wait_for(stop.wait(), timeout=poll_seconds)
        except asyncio.TimeoutError:
            pass
    await close_redis_client()
    logger.info("reminder_worker_stopped")


async def _main() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    await run_forever(stop)


def main() -> None:
    setup_logging(debug=settings.is_development, max_log_length=settings.MAX_LOG_LENGTH, level=settings.LOG_LEVEL)
    asyncio.run(_main())


if __name__ == "__main__":
    main()
