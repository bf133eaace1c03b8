"""
Pytest configuration for Feedback Funnel tests.
Points the app at a throwaway SQLite database and the in-memory queue.
"""

import os
import tempfile

# Must be set before any app imports
_test_data_dir = tempfile.mkdtemp(prefix="feedback_funnel_test_")
os.environ["FEEDBACK_FUNNEL_DATABASE_URL"] = f"sqlite:///{_test_data_dir}/test.db"
os.environ["FEEDBACK_FUNNEL_QUEUE_BACKEND"] = "memory"
os.environ["FEEDBACK_FUNNEL_LOG_DIR"] = os.path.join(_test_data_dir, "logs")
os.environ["FEEDBACK_FUNNEL_RUN_WORKER_IN_PROCESS"] = "false"
for _var in (
    "OPENAI_API_KEY", "FEEDBACK_FUNNEL_OPENAI_API_KEY",
    "GITHUB_WEBHOOK_SECRET", "FEEDBACK_FUNNEL_GITHUB_WEBHOOK_SECRET",
):
    os.environ.pop(_var, None)

import pytest
from fastapi.testclient import TestClient

# Ensure DB tables exist for all tests (create via SQLModel metadata)
from sqlmodel import SQLModel
from app.core.database import get_engine
from app.models.feedback import Feedback  # noqa: F401

SQLModel.metadata.create_all(get_engine())

# Load error registry so FeedbackFunnelError returns correct HTTP status codes
from app.core.errors.registry import error_registry
error_registry.load()

from app.config import settings
from app.core.dependencies import get_queue, get_store
from app.main import app
from app.services.enrichment import Enricher
from app.services.feedback_store import InMemoryFeedbackStore
from app.services.feedback_worker import FeedbackWorker
from app.services.work_queue import InMemoryWorkQueue


@pytest.fixture
def memory_store():
    return InMemoryFeedbackStore()


@pytest.fixture
def memory_queue():
    return InMemoryWorkQueue()


@pytest.fixture
def client(memory_store, memory_queue):
    """TestClient wired to the in-memory store and queue."""
    app.dependency_overrides[get_store] = lambda: memory_store
    app.dependency_overrides[get_queue] = lambda: memory_queue
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def worker(memory_store, memory_queue):
    """Worker over the same store/queue as ``client``, in default-enrichment mode."""
    return FeedbackWorker(memory_store, memory_queue, Enricher(), poll_interval=0.05, error_backoff=0)


@pytest.fixture
def webhook_secret(monkeypatch):
    secret = "It's a Secret to Everybody"
    monkeypatch.setattr(settings, "github_webhook_secret", secret)
    return secret


@pytest.fixture(autouse=True)
def _no_webhook_secret_by_default(monkeypatch):
    monkeypatch.setattr(settings, "github_webhook_secret", None)
