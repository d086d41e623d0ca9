"""Background task: periodically mark due tasks notified and send their notifications."""
import asyncio
import logging

from alqemist.config import get_settings
from alqemist.database import SessionLocal
from alqemist.services.task_scheduler import TaskScheduler

logger = logging.getLogger(__name__)


def _sweep_once(scheduler: TaskScheduler) -> int:
    db = SessionLocal()
    try:
        return scheduler.process_due_tasks(db)
    finally:
        db.close()


async def due_task_sweeper(scheduler: TaskScheduler, interval: int | None = None):
    """
    Runs until cancelled. Each pass uses its own DB session in a worker thread so the
    event loop is never blocked by the sweep.
    """
    interval = interval if interval is not None else get_settings().task_sweep_interval_seconds
    loop = asyncio.get_event_loop()
    while True:
        try:
            processed = await loop.run_in_executor(None, _sweep_once, scheduler)
            if processed:
                logger.info("Due-task sweep processed %d task(s)", processed)
        except Exception:
            logger.exception("Due-task sweep failed")
        await asyncio.sleep(interval)
