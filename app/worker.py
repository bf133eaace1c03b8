"""
Standalone enrichment worker process.

    python -m app.worker

Pops feedback ids from the Redis queue forever. There is no shutdown path
beyond the process being terminated; an id popped by a terminated worker
is not redelivered.
"""

import asyncio
import logging

from app.config import settings
from app.core.database import close_db, init_db
from app.core.errors.registry import error_registry
from app.core.structured_logging import setup_logging
from app.services.enrichment import build_enricher
from app.services.feedback_store import get_feedback_store
from app.services.feedback_worker import FeedbackWorker
from app.services.work_queue import close_work_queue, get_work_queue

logger = logging.getLogger(__name__)


async def run_worker() -> None:
    error_registry.load()
    init_db()

    queue = get_work_queue()
    if queue.backend == "memory":
        logger.warning("Standalone worker on an in-memory queue will never see API submissions")
    else:
        # Fail fast on a bad REDIS_URL instead of logging pop errors forever
        await queue.ping()

    worker = FeedbackWorker(get_feedback_store(), queue, build_enricher())
    try:
        await worker.run()
    finally:
        await close_work_queue()
        close_db()


def main() -> None:
    setup_logging(log_file="feedback_funnel_worker.jsonl")
    logger.info("Starting enrichment worker (queue=%s)", settings.queue_name)
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
