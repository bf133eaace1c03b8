"""
Tests for POST /api/ingest and the shared create-then-push ingest path.
"""

import asyncio
import time

import pytest

from app.config import settings
from app.core.dependencies import get_queue, get_store
from app.core.errors import QueueError, StoreError
from app.main import app
from app.services.feedback_store import InMemoryFeedbackStore
from app.services.ingest_service import IngestService
from app.services.work_queue import InMemoryWorkQueue


class FailingCreateStore(InMemoryFeedbackStore):
    def create(self, content, source):
        raise StoreError(detail="disk full")


class SlowCreateStore(InMemoryFeedbackStore):
    def create(self, content, source):
        time.sleep(0.3)
        return super().create(content, source)


class FailingPushQueue(InMemoryWorkQueue):
    async def push(self, record_id):
        raise QueueError(detail="connection refused")


class OrderingQueue(InMemoryWorkQueue):
    """Records what the store looked like at the moment of each push."""

    def __init__(self, store):
        super().__init__()
        self.store = store
        self.seen_at_push = []

    async def push(self, record_id):
        self.seen_at_push.append(self.store.get(int(record_id)))
        return await super().push(record_id)


class TestIngestAccepted:

    def test_valid_submission_returns_202(self, client):
        response = client.post("/api/ingest", json={"content": "App crashes on login", "source": "App"})
        assert response.status_code == 202
        body = response.json()
        assert body["message"] == "Feedback received and queued for analysis"
        assert isinstance(body["id"], int)

    def test_record_is_stored_unprocessed(self, client, memory_store):
        response = client.post("/api/ingest", json={"content": "Love the new UI", "source": "Email"})
        record = memory_store.get(response.json()["id"])

        assert record.content == "Love the new UI"
        assert record.source == "Email"
        assert record.is_processed is False
        assert record.sentiment is None
        assert record.category is None
        assert record.summary is None

    def test_id_is_enqueued(self, client, memory_queue):
        response = client.post("/api/ingest", json={"content": "x", "source": "App"})
        assert memory_queue.snapshot() == [str(response.json()["id"])]

    def test_each_submission_gets_its_own_entry_in_order(self, client, memory_queue):
        ids = [
            client.post("/api/ingest", json={"content": f"item {i}", "source": "App"}).json()["id"]
            for i in range(3)
        ]
        assert ids == sorted(ids)
        assert len(set(ids)) == 3
        assert memory_queue.snapshot() == [str(i) for i in ids]

    def test_record_exists_before_push(self, client, memory_store):
        queue = OrderingQueue(memory_store)
        app.dependency_overrides[get_queue] = lambda: queue

        response = client.post("/api/ingest", json={"content": "ordered", "source": "App"})

        assert response.status_code == 202
        assert len(queue.seen_at_push) == 1
        seen = queue.seen_at_push[0]
        assert seen is not None
        assert seen.id == response.json()["id"]
        assert seen.is_processed is False

    def test_response_echoes_correlation_headers(self, client):
        response = client.post(
            "/api/ingest",
            json={"content": "x", "source": "App"},
            headers={"x-request-id": "req-123"},
        )
        assert response.headers["x-request-id"] == "req-123"
        assert response.headers["x-correlation-id"]


class TestIngestValidation:

    @pytest.mark.parametrize("body", [
        {"source": "App"},
        {"content": "x"},
        {},
        {"content": "", "source": "App"},
        {"content": "x", "source": ""},
        {"content": "   ", "source": "App"},
        {"content": 42, "source": "App"},
    ])
    def test_invalid_body_is_400_without_side_effects(self, client, memory_store, memory_queue, body):
        response = client.post("/api/ingest", json=body)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "FBF-API-001"
        assert memory_store.list_recent() == []
        assert memory_queue.snapshot() == []

    def test_non_json_body_is_400(self, client, memory_store):
        response = client.post(
            "/api/ingest", content=b"not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert memory_store.list_recent() == []


class TestIngestFailures:

    def test_create_failure_never_pushes(self, client, memory_queue):
        app.dependency_overrides[get_store] = lambda: FailingCreateStore()

        response = client.post("/api/ingest", json={"content": "x", "source": "App"})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "FBF-DB-001"
        assert memory_queue.snapshot() == []

    def test_create_timeout_is_store_error(self, client, memory_queue, monkeypatch):
        monkeypatch.setattr(settings, "store_call_timeout_s", 0.05)
        app.dependency_overrides[get_store] = lambda: SlowCreateStore()

        response = client.post("/api/ingest", json={"content": "x", "source": "App"})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "FBF-DB-001"
        assert memory_queue.snapshot() == []

    def test_push_failure_leaves_orphan_and_is_not_202(self, client, memory_store):
        app.dependency_overrides[get_queue] = lambda: FailingPushQueue()

        response = client.post("/api/ingest", json={"content": "lost", "source": "App"})

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "FBF-QUE-001"
        assert error["retryable"] is False
        orphans = memory_store.list_recent()
        assert len(orphans) == 1
        assert orphans[0].content == "lost"
        assert orphans[0].is_processed is False


class TestIngestService:

    @pytest.mark.asyncio
    async def test_submit_returns_stored_record(self, memory_store, memory_queue):
        service = IngestService(memory_store, memory_queue)
        record = await service.submit("hello", "CLI")

        assert memory_store.get(record.id).content == "hello"
        assert await memory_queue.pop(timeout=0.1) == str(record.id)

    @pytest.mark.asyncio
    async def test_push_failure_carries_orphan_id(self, memory_store):
        service = IngestService(memory_store, FailingPushQueue())

        with pytest.raises(QueueError) as exc_info:
            await service.submit("hello", "CLI")

        orphan_id = exc_info.value.context["record_id"]
        assert memory_store.get(orphan_id) is not None

    @pytest.mark.asyncio
    async def test_create_timeout_never_pushes(self, memory_queue, monkeypatch):
        monkeypatch.setattr(settings, "store_call_timeout_s", 0.05)
        service = IngestService(SlowCreateStore(), memory_queue)

        with pytest.raises(StoreError) as exc_info:
            await service.submit("slow", "CLI")

        assert exc_info.value.code == "FBF-DB-001"
        assert exc_info.value.context["timed_out"] is True
        assert memory_queue.snapshot() == []

    @pytest.mark.asyncio
    async def test_concurrent_submissions_are_independent(self, memory_store, memory_queue):
        service = IngestService(memory_store, memory_queue)
        records = await asyncio.gather(*(service.submit(f"c{i}", "App") for i in range(10)))

        assert len({r.id for r in records}) == 10
        assert sorted(memory_queue.snapshot(), key=int) == sorted((str(r.id) for r in records), key=int)
