"""
Feedback enrichment worker.

Single sequential consumer of the work queue: pop an id, load the record,
enrich it, persist the result. Exactly one item is in flight at a time.

Failure policy, per item (every branch returns the loop to idle):
    - id not found in the store       -> logged, dropped
    - record already processed        -> logged, skipped (redelivery is harmless)
    - enrichment fails                -> logged, dropped; stays unprocessed,
                                         no requeue and no retry
    - store update fails              -> logged, not retried
Queue pop failures are logged and the loop backs off briefly before
popping again; the loop itself never exits on an item or queue error.
"""

import asyncio
import logging
from collections import Counter
from enum import Enum
from typing import Optional

from app.config import settings
from app.core.async_utils import run_sync
from app.core.errors import EnrichmentError, QueueError, StoreError
from app.core.structured_logging import log_context
from app.services.enrichment import Enricher
from app.services.feedback_store import FeedbackStore
from app.services.work_queue import WorkQueue

logger = logging.getLogger(__name__)


class WorkOutcome(str, Enum):
    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"
    NOT_FOUND = "not_found"
    INVALID_ID = "invalid_id"
    ENRICHMENT_FAILED = "enrichment_failed"
    STORE_FAILED = "store_failed"
    FAILED = "failed"


class FeedbackWorker:
    """Consumes record ids from ``queue`` and enriches them in ``store``."""

    def __init__(
        self,
        store: FeedbackStore,
        queue: WorkQueue,
        enricher: Enricher,
        poll_interval: Optional[float] = None,
        error_backoff: Optional[float] = None,
    ):
        self.store = store
        self.queue = queue
        self.enricher = enricher
        self.poll_interval = poll_interval if poll_interval is not None else settings.worker_poll_interval_s
        self.error_backoff = error_backoff if error_backoff is not None else settings.queue_error_backoff_s
        self.current_id: Optional[str] = None
        self.stats: Counter = Counter()

    async def process_one(self, raw_id: str) -> WorkOutcome:
        """Handle one popped id end to end."""
        try:
            record_id = int(raw_id)
        except (TypeError, ValueError):
            logger.error("Dropping malformed queue entry %r", raw_id)
            return WorkOutcome.INVALID_ID

        try:
            record = await run_sync(self.store.get, record_id)
        except StoreError as e:
            logger.error("Could not load feedback %s: %s", record_id, e.detail)
            return WorkOutcome.STORE_FAILED

        if record is None:
            logger.warning("Feedback %s not found, dropping", record_id)
            return WorkOutcome.NOT_FOUND

        if record.is_processed:
            logger.info("Feedback %s already processed, skipping", record_id)
            return WorkOutcome.ALREADY_PROCESSED

        try:
            result = await self.enricher.analyze(record.content)
        except EnrichmentError as e:
            logger.error(
                "AI error for feedback %s: %s", record_id, e.detail,
                extra={"error.code": e.code, **{f"error.ctx.{k}": v for k, v in e.context.items()}},
            )
            return WorkOutcome.ENRICHMENT_FAILED

        record.mark_processed(result)
        try:
            await run_sync(self.store.update, record)
        except StoreError as e:
            logger.error("Could not save enrichment for feedback %s: %s", record_id, e.detail)
            return WorkOutcome.STORE_FAILED

        logger.info(
            "Successfully processed feedback %s (sentiment=%s, category=%s)",
            record_id, record.sentiment, record.category,
        )
        return WorkOutcome.PROCESSED

    async def run(
        self,
        stop: Optional[asyncio.Event] = None,
        max_items: Optional[int] = None,
    ) -> int:
        """Pop and process ids until ``stop`` is set or ``max_items`` were handled.

        With neither given this runs forever, blocking on the queue with no
        timeout. Returns the number of ids handled; per-outcome counts
        accumulate in ``stats``.
        """
        handled = 0
        timeout = None if stop is None else self.poll_interval
        logger.info("Worker started: waiting for feedback on %s queue", self.queue.backend)

        while not (stop is not None and stop.is_set()):
            if max_items is not None and handled >= max_items:
                break

            try:
                raw_id = await self.queue.pop(timeout=timeout)
            except QueueError as e:
                logger.error("Queue pop failed: %s", e.detail)
                await asyncio.sleep(self.error_backoff)
                continue

            if raw_id is None:
                continue

            self.current_id = raw_id
            with log_context(record_id=raw_id):
                logger.info("Processing feedback ID: %s", raw_id)
                try:
                    outcome = await self.process_one(raw_id)
                except Exception:
                    logger.exception("Unexpected failure processing feedback %s", raw_id)
                    outcome = WorkOutcome.FAILED
            self.current_id = None
            handled += 1
            self.stats[outcome] += 1
            await asyncio.sleep(0)  # yield to event loop

        logger.info("Worker stopped after %d item(s)", handled)
        return handled
