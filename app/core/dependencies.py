"""
FastAPI dependency providers.

Routers never reach for process-wide handles directly; they ask for a
store, a queue or an IngestService through these callables, which tests
replace via ``app.dependency_overrides``.
"""

from fastapi import Depends

from app.services.feedback_store import FeedbackStore, get_feedback_store
from app.services.ingest_service import IngestService
from app.services.work_queue import WorkQueue, get_work_queue


def get_store() -> FeedbackStore:
    return get_feedback_store()


def get_queue() -> WorkQueue:
    return get_work_queue()


def get_ingest_service(
    store: FeedbackStore = Depends(get_store),
    queue: WorkQueue = Depends(get_queue),
) -> IngestService:
    return IngestService(store, queue)
