"""
Tests for the enrichment worker: per-item outcomes and the pop loop.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from app.core.errors import QueueError, StoreError
from app.services.enrichment import Enricher
from app.services.feedback_store import InMemoryFeedbackStore
from app.services.feedback_worker import FeedbackWorker, WorkOutcome
from app.services.llm_providers import LLMProviderError, RateLimitError


def _provider(reply="Sentiment: Negative\nCategory: Bug\nSummary: Login crashes.", side_effect=None):
    provider = MagicMock()
    provider.generate = AsyncMock(return_value=reply, side_effect=side_effect)
    return provider


class FailingUpdateStore(InMemoryFeedbackStore):
    def update(self, record):
        raise StoreError("FBF-DB-002", detail="database is locked")


class TestProcessOne:

    @pytest.mark.asyncio
    async def test_default_enrichment_marks_processed(self, worker, memory_store):
        record = memory_store.create("Love the new UI", "Email")

        outcome = await worker.process_one(str(record.id))

        assert outcome is WorkOutcome.PROCESSED
        stored = memory_store.get(record.id)
        assert stored.is_processed is True
        assert stored.sentiment == "neutral"
        assert stored.category == "uncategorized"
        assert stored.summary == "Love the new UI"

    @pytest.mark.asyncio
    async def test_llm_enrichment_is_persisted(self, memory_store, memory_queue):
        worker = FeedbackWorker(memory_store, memory_queue, Enricher(_provider()), error_backoff=0)
        record = memory_store.create("App crashes on login", "App")

        assert await worker.process_one(str(record.id)) is WorkOutcome.PROCESSED

        stored = memory_store.get(record.id)
        assert (stored.sentiment, stored.category, stored.summary) == ("negative", "bug", "Login crashes.")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        LLMProviderError("OpenAI API error: boom", provider="openai"),
        RateLimitError("rate limited", provider="openai"),
    ])
    async def test_enrichment_failure_leaves_record_untouched(self, memory_store, memory_queue, error):
        worker = FeedbackWorker(memory_store, memory_queue, Enricher(_provider(side_effect=error)))
        record = memory_store.create("text", "App")

        outcome = await worker.process_one(str(record.id))

        assert outcome is WorkOutcome.ENRICHMENT_FAILED
        stored = memory_store.get(record.id)
        assert stored.is_processed is False
        assert stored.sentiment is None
        assert stored.summary is None
        assert memory_queue.snapshot() == []

    @pytest.mark.asyncio
    async def test_empty_reply_is_enrichment_failure(self, memory_store, memory_queue):
        worker = FeedbackWorker(memory_store, memory_queue, Enricher(_provider(reply="   ")))
        record = memory_store.create("text", "App")

        assert await worker.process_one(str(record.id)) is WorkOutcome.ENRICHMENT_FAILED
        assert memory_store.get(record.id).is_processed is False

    @pytest.mark.asyncio
    async def test_unknown_id_is_dropped(self, worker, memory_store):
        assert await worker.process_one("999") is WorkOutcome.NOT_FOUND
        assert memory_store.list_recent() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw_id", ["abc", "", "1.5"])
    async def test_malformed_id_is_dropped(self, worker, raw_id):
        assert await worker.process_one(raw_id) is WorkOutcome.INVALID_ID

    @pytest.mark.asyncio
    async def test_already_processed_is_skipped_without_llm_call(self, memory_store, memory_queue):
        provider = _provider()
        worker = FeedbackWorker(memory_store, memory_queue, Enricher(provider))
        record = memory_store.create("text", "App")
        await worker.process_one(str(record.id))
        first = memory_store.get(record.id)

        outcome = await worker.process_one(str(record.id))

        assert outcome is WorkOutcome.ALREADY_PROCESSED
        assert provider.generate.await_count == 1
        second = memory_store.get(record.id)
        assert (second.sentiment, second.category, second.summary) == (first.sentiment, first.category, first.summary)

    @pytest.mark.asyncio
    async def test_update_failure_is_reported(self, memory_queue):
        store = FailingUpdateStore()
        worker = FeedbackWorker(store, memory_queue, Enricher())
        record = store.create("text", "App")

        assert await worker.process_one(str(record.id)) is WorkOutcome.STORE_FAILED
        assert store.get(record.id).is_processed is False


class TestRunLoop:

    @pytest.mark.asyncio
    async def test_processes_queued_ids_in_fifo_order(self, worker, memory_store, memory_queue):
        ids = [memory_store.create(f"item {i}", "App").id for i in range(3)]
        for record_id in ids:
            await memory_queue.push(str(record_id))
        worker.process_one = AsyncMock(wraps=worker.process_one)

        handled = await worker.run(max_items=3)

        assert handled == 3
        assert [c.args[0] for c in worker.process_one.await_args_list] == [str(i) for i in ids]
        assert worker.stats[WorkOutcome.PROCESSED] == 3
        assert all(memory_store.get(i).is_processed for i in ids)

    @pytest.mark.asyncio
    async def test_item_failures_do_not_stop_the_loop(self, worker, memory_store, memory_queue):
        good = memory_store.create("good", "App")
        for raw in ("junk", "404", str(good.id)):
            await memory_queue.push(raw)

        await worker.run(max_items=3)

        assert worker.stats[WorkOutcome.INVALID_ID] == 1
        assert worker.stats[WorkOutcome.NOT_FOUND] == 1
        assert worker.stats[WorkOutcome.PROCESSED] == 1
        assert memory_store.get(good.id).is_processed is True

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_counted_and_loop_continues(self, memory_store, memory_queue):
        enricher = MagicMock()
        enricher.analyze = AsyncMock(side_effect=RuntimeError("bug"))
        worker = FeedbackWorker(memory_store, memory_queue, enricher, error_backoff=0)
        first = memory_store.create("one", "App")
        await memory_queue.push(str(first.id))
        await memory_queue.push("999")

        handled = await worker.run(max_items=2)

        assert handled == 2
        assert worker.stats[WorkOutcome.FAILED] == 1
        assert worker.stats[WorkOutcome.NOT_FOUND] == 1
        assert worker.current_id is None

    @pytest.mark.asyncio
    async def test_queue_errors_back_off_and_retry(self, worker, memory_store):
        record = memory_store.create("text", "App")
        worker.queue.pop = AsyncMock(side_effect=[
            QueueError("FBF-QUE-002", detail="connection reset"),
            QueueError("FBF-QUE-002", detail="connection reset"),
            str(record.id),
        ])

        handled = await worker.run(max_items=1)

        assert handled == 1
        assert worker.queue.pop.await_count == 3
        assert memory_store.get(record.id).is_processed is True

    @pytest.mark.asyncio
    async def test_stop_event_ends_idle_loop(self, worker):
        stop = asyncio.Event()

        async def _stop_soon():
            await asyncio.sleep(0.1)
            stop.set()

        stopper = asyncio.create_task(_stop_soon())
        handled = await asyncio.wait_for(worker.run(stop=stop), timeout=5)
        await stopper

        assert handled == 0

    @pytest.mark.asyncio
    async def test_record_id_context_is_cleared_after_each_item(self, worker, memory_store, memory_queue):
        record = memory_store.create("text", "App")
        await memory_queue.push(str(record.id))

        await worker.run(max_items=1)

        assert "record_id" not in structlog.contextvars.get_contextvars()
