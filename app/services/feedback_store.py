"""
Feedback Store
==============

Keyed storage for feedback records: create, get-by-id, update, plus the
listing queries the dashboard and reconciliation need, and a bare
updated_at bump (``touch``) that reconciliation stamps on re-queue.

``SQLFeedbackStore`` is the production store (SQLModel sessions over the
engine from app.core.database). ``InMemoryFeedbackStore`` is the
drop-in double the test-suite wires into the API and the worker.

Every write commits before returning, so a record handed back from
``create`` is visible to any reader (including the worker) from then on.
"""

from __future__ import annotations

import itertools
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from app.core.database import get_session_context
from app.core.errors import StoreError
from app.models.feedback import Feedback

logger = logging.getLogger(__name__)


class FeedbackStore(Protocol):
    def create(self, content: str, source: str) -> Feedback: ...

    def get(self, record_id: int) -> Optional[Feedback]: ...

    def update(self, record: Feedback) -> Feedback: ...

    def list_recent(self, limit: Optional[int] = None) -> List[Feedback]: ...

    def list_unprocessed_before(self, cutoff: datetime, limit: int) -> List[Feedback]: ...

    def touch(self, record_id: int) -> None: ...


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we write is UTC.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SQLFeedbackStore:
    """FeedbackStore backed by the SQL database."""

    def create(self, content: str, source: str) -> Feedback:
        record = Feedback(content=content, source=source, is_processed=False)
        try:
            with get_session_context() as session:
                session.add(record)
                session.commit()
                session.refresh(record)
        except SQLAlchemyError as e:
            raise StoreError("FBF-DB-001", detail=f"insert failed: {e}", context={"source": source})
        logger.info("Stored feedback %s (source=%s)", record.id, source)
        return record

    def get(self, record_id: int) -> Optional[Feedback]:
        try:
            with get_session_context() as session:
                return session.get(Feedback, record_id)
        except SQLAlchemyError as e:
            raise StoreError("FBF-DB-003", detail=f"read failed: {e}", context={"record_id": record_id})

    def update(self, record: Feedback) -> Feedback:
        record.updated_at = datetime.now(timezone.utc)
        try:
            with get_session_context() as session:
                merged = session.merge(record)
                session.commit()
                session.refresh(merged)
                return merged
        except SQLAlchemyError as e:
            raise StoreError("FBF-DB-002", detail=f"update failed: {e}", context={"record_id": record.id})

    def list_recent(self, limit: Optional[int] = None) -> List[Feedback]:
        stmt = select(Feedback).order_by(Feedback.created_at.desc(), Feedback.id.desc())
        if limit:
            stmt = stmt.limit(limit)
        try:
            with get_session_context() as session:
                return list(session.exec(stmt).all())
        except SQLAlchemyError as e:
            raise StoreError("FBF-DB-003", detail=f"list failed: {e}")

    def list_unprocessed_before(self, cutoff: datetime, limit: int) -> List[Feedback]:
        stmt = (
            select(Feedback)
            .where(Feedback.is_processed == False)  # noqa: E712
            .where(Feedback.created_at < cutoff)
            .where(Feedback.updated_at < cutoff)
            .order_by(Feedback.id)
            .limit(limit)
        )
        try:
            with get_session_context() as session:
                return list(session.exec(stmt).all())
        except SQLAlchemyError as e:
            raise StoreError("FBF-DB-003", detail=f"unprocessed scan failed: {e}")

    def touch(self, record_id: int) -> None:
        """Bump updated_at only, leaving the enrichment columns alone."""
        stmt = (
            sa_update(Feedback)
            .where(Feedback.id == record_id)
            .values(updated_at=datetime.now(timezone.utc))
        )
        try:
            with get_session_context() as session:
                session.execute(stmt)
                session.commit()
        except SQLAlchemyError as e:
            raise StoreError("FBF-DB-002", detail=f"touch failed: {e}", context={"record_id": record_id})


class InMemoryFeedbackStore:
    """Thread-safe dict-backed FeedbackStore. Records are copied in and out."""

    def __init__(self) -> None:
        self._records: Dict[int, Feedback] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @staticmethod
    def _copy(record: Feedback) -> Feedback:
        return Feedback(**record.model_dump())

    def create(self, content: str, source: str) -> Feedback:
        with self._lock:
            record = Feedback(id=next(self._ids), content=content, source=source, is_processed=False)
            self._records[record.id] = record
            return self._copy(record)

    def get(self, record_id: int) -> Optional[Feedback]:
        with self._lock:
            record = self._records.get(record_id)
            return self._copy(record) if record else None

    def update(self, record: Feedback) -> Feedback:
        with self._lock:
            if record.id not in self._records:
                raise StoreError("FBF-DB-002", detail=f"no feedback {record.id}")
            stored = self._copy(record)
            stored.updated_at = datetime.now(timezone.utc)
            self._records[record.id] = stored
            return self._copy(stored)

    def list_recent(self, limit: Optional[int] = None) -> List[Feedback]:
        with self._lock:
            rows = sorted(
                self._records.values(),
                key=lambda r: (_aware(r.created_at), r.id),
                reverse=True,
            )
            return [self._copy(r) for r in rows[:limit]]

    def list_unprocessed_before(self, cutoff: datetime, limit: int) -> List[Feedback]:
        with self._lock:
            rows = [
                r for r in sorted(self._records.values(), key=lambda r: r.id)
                if not r.is_processed
                and _aware(r.created_at) < cutoff
                and _aware(r.updated_at) < cutoff
            ]
            return [self._copy(r) for r in rows[:limit]]

    def touch(self, record_id: int) -> None:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise StoreError("FBF-DB-002", detail=f"no feedback {record_id}")
            record.updated_at = datetime.now(timezone.utc)


_store: Optional[FeedbackStore] = None


def get_feedback_store() -> FeedbackStore:
    """Process-wide store used by the API and worker entry points."""
    global _store
    if _store is None:
        _store = SQLFeedbackStore()
    return _store
