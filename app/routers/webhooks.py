import json
import logging

import pydantic
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.core.dependencies import get_ingest_service
from app.core.errors import AuthError, ValidationError
from app.core.signatures import SIGNATURE_HEADER, verify_signature
from app.models.schemas import GitHubIssuePayload, WebhookStatus
from app.services.ingest_service import IngestService

router = APIRouter()

logger = logging.getLogger(__name__)

GITHUB_SOURCE = "GitHub"
ACCEPTED_ACTIONS = {"opened", "created"}


@router.post(
    "/github",
    summary="GitHub Issue Webhook",
    description="Receive GitHub issue events and queue newly opened issues as feedback.",
    responses={202: {"model": WebhookStatus}, 200: {"model": WebhookStatus}},
)
async def github_webhook(
    request: Request,
    service: IngestService = Depends(get_ingest_service),
):
    payload = await request.body()

    if settings.is_webhook_verification_enabled():
        if not verify_signature(settings.github_webhook_secret, payload, request.headers.get(SIGNATURE_HEADER)):
            logger.warning("Invalid GitHub webhook signature")
            raise AuthError(detail="signature mismatch", context={"event": request.headers.get("X-GitHub-Event")})
    else:
        logger.warning("GITHUB_WEBHOOK_SECRET not set - skipping verification")

    try:
        event = GitHubIssuePayload.model_validate(json.loads(payload))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("FBF-API-002", detail=f"invalid JSON: {e}")
    except pydantic.ValidationError as e:
        raise ValidationError("FBF-API-002", detail=f"unexpected payload shape: {e.error_count()} error(s)")

    if event.action not in ACCEPTED_ACTIONS:
        logger.info("Ignoring GitHub event: action=%r", event.action)
        return JSONResponse(
            status_code=200,
            content=WebhookStatus(status="ignored").model_dump(exclude_none=True),
        )

    record = await service.submit(event.to_content(), GITHUB_SOURCE)
    return JSONResponse(
        status_code=202,
        content=WebhookStatus(status="queued", id=record.id).model_dump(),
    )
