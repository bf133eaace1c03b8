"""
Orphan Reconciliation
=====================

PURPOSE:
    Re-queues feedback that was stored but never finished processing:
    records whose id was never pushed (push failed after create, or the
    process died between the two steps) and records whose enrichment
    failed and were dropped by the worker.

    Both look the same from the store: is_processed=False and older than
    the grace period. Each re-queue bumps updated_at, so an id still waiting
    behind a slow worker is pushed at most once per grace period instead of
    once per run. Duplicates that do land are harmless; the worker skips
    records that are already processed.

SCHEDULE:
    Off by default (FEEDBACK_FUNNEL_RECONCILE_INTERVAL_S=0), so a failed
    enrichment stays unprocessed unless an operator opts in.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List

from app.config import settings
from app.core.async_utils import run_sync
from app.core.errors import QueueError, StoreError
from app.services.feedback_store import FeedbackStore
from app.services.work_queue import WorkQueue

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    scanned: int = 0
    requeued: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)


async def reconcile_orphans(
    store: FeedbackStore,
    queue: WorkQueue,
    older_than_s: int,
    limit: int = 100,
) -> ReconciliationReport:
    """Push the ids of unprocessed records neither created nor re-queued in the last ``older_than_s``."""
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=older_than_s)
    report = ReconciliationReport()

    stale = await run_sync(store.list_unprocessed_before, cutoff, limit)
    report.scanned = len(stale)

    for record in stale:
        try:
            await queue.push(str(record.id))
        except QueueError as e:
            logger.warning("Reconciliation could not re-queue feedback %s: %s", record.id, e.detail)
            report.failed.append(record.id)
            # Queue is down; the rest would fail the same way
            break
        report.requeued.append(record.id)

        try:
            await run_sync(store.touch, record.id)
        except StoreError as e:
            # Still re-queued; it just becomes eligible again on the next run
            logger.warning("Reconciliation could not stamp feedback %s: %s", record.id, e.detail)

    if report.scanned:
        logger.info(
            "Reconciliation: %d stale unprocessed record(s), %d re-queued, %d failed",
            report.scanned, len(report.requeued), len(report.failed),
        )
    return report


async def reconciliation_loop(store: FeedbackStore, queue: WorkQueue) -> None:
    """Run reconcile_orphans every ``reconcile_interval_s`` seconds, forever."""
    interval = settings.reconcile_interval_s
    logger.info(
        "Orphan reconciliation enabled (every %ds, older than %ds)",
        interval, settings.reconcile_older_than_s,
    )
    while True:
        await asyncio.sleep(interval)
        try:
            await reconcile_orphans(
                store, queue,
                older_than_s=settings.reconcile_older_than_s,
                limit=settings.reconcile_batch_size,
            )
        except (StoreError, TimeoutError) as e:
            logger.error("Reconciliation run failed: %s", e)
