"""
Ingest Service
==============

Shared producer path for both ingestion endpoints: persist the feedback as
an unprocessed record, then hand its id to the work queue.

Ordering: the store create commits before the push is attempted, because
the worker reads the record as soon as it pops the id. The two steps are
not transactional. A failed push leaves the stored record orphaned; it is
logged with its id so opt-in reconciliation (or an operator) can re-queue
it, and the caller gets an error instead of a 202.
"""

import logging

from app.core.async_utils import run_sync
from app.core.errors import QueueError, StoreError
from app.models.feedback import Feedback
from app.services.feedback_store import FeedbackStore
from app.services.work_queue import WorkQueue

logger = logging.getLogger(__name__)


class IngestService:
    def __init__(self, store: FeedbackStore, queue: WorkQueue):
        self.store = store
        self.queue = queue

    async def submit(self, content: str, source: str) -> Feedback:
        """Create the record, then enqueue its id.

        Raises:
            StoreError: create failed or timed out; nothing was pushed.
            QueueError: create succeeded but the push failed (orphan).
        """
        try:
            record = await run_sync(self.store.create, content, source)
        except TimeoutError as e:
            # The insert thread keeps running and may still commit
            logger.error(
                "Store create timed out (source=%s); a late commit would leave an unqueued record",
                source, extra={"orphan": True},
            )
            raise StoreError(detail=str(e), context={"source": source, "timed_out": True}) from e

        try:
            depth = await self.queue.push(str(record.id))
        except QueueError as e:
            logger.error(
                "Orphaned feedback %s: stored but not queued (%s)",
                record.id, e.detail,
                extra={"record_id": record.id, "orphan": True},
            )
            e.context.setdefault("record_id", record.id)
            raise

        logger.info(
            "Feedback %s queued for analysis (source=%s, queue_depth=%d)",
            record.id, source, depth,
        )
        return record
