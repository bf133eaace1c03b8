"""
Ingest Router
=============

Direct feedback submission. The record is stored and queued, and the caller
gets 202 right away; enrichment happens later in the worker.
"""

import logging

from fastapi import APIRouter, Depends, status

from app.core.dependencies import get_ingest_service
from app.models.schemas import IngestAccepted, IngestRequest
from app.services.ingest_service import IngestService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/ingest",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=IngestAccepted,
    summary="Submit feedback",
    description="Store a feedback item and queue it for AI analysis. Returns 400 if content or source is missing.",
)
async def ingest_feedback(
    body: IngestRequest,
    service: IngestService = Depends(get_ingest_service),
):
    record = await service.submit(body.content, body.source)
    return IngestAccepted(id=record.id)
