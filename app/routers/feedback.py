"""
Feedback Router
===============

Dashboard endpoints for listing feedback with its enrichment.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app.core.async_utils import run_sync
from app.core.dependencies import get_store
from app.core.errors import NotFoundError
from app.models.schemas import FeedbackRead
from app.services.feedback_store import FeedbackStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/feedback", response_model=List[FeedbackRead])
async def list_feedback(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    store: FeedbackStore = Depends(get_store),
):
    """List feedback, newest first."""
    return await run_sync(store.list_recent, limit)


@router.get("/feedback/{record_id}", response_model=FeedbackRead)
async def get_feedback(
    record_id: int,
    store: FeedbackStore = Depends(get_store),
):
    record = await run_sync(store.get, record_id)
    if record is None:
        raise NotFoundError(detail=f"feedback {record_id}", context={"record_id": record_id})
    return record
