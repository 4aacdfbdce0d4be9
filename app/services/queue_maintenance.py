import asyncio
import logging
from typing import Dict, Optional

from app.core.config import settings
from app.services.event_queue import EventQueue

logger = logging.getLogger(__name__)


async def run_queue_maintenance(queue: EventQueue) -> Dict[str, int]:
    """One-shot: recover stalled jobs and prune old completed ones."""
    recovered = await queue.recover_stalled()
    removed = await queue.clean_completed()
    return {"recovered": recovered, "removed": removed}


async def start_queue_maintenance_loop(
    queue: EventQueue, interval: Optional[float] = None
) -> None:
    """Infinite loop that runs queue maintenance on a fixed interval."""
    if interval is None:
        interval = settings.QUEUE_MAINTENANCE_INTERVAL_SECONDS
    logger.info("Queue maintenance task started (interval=%ss)", interval)
    while True:
        try:
            counts = await run_queue_maintenance(queue)
            if any(counts.values()):
                logger.info(
                    "Queue maintenance: %d stalled recovered, %d completed removed",
                    counts["recovered"],
                    counts["removed"],
                )
        except Exception:
            logger.error("Queue maintenance cycle failed", exc_info=True)
        await asyncio.sleep(interval)
