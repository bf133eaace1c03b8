import logging

from fastapi import APIRouter, Depends

from app.core.dependencies import get_queue
from app.core.errors import QueueError
from app.services.work_queue import WorkQueue

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(queue: WorkQueue = Depends(get_queue)):
    """Liveness plus queue depth. Never fails; a dead queue reports degraded."""
    try:
        depth = await queue.depth()
    except QueueError as e:
        logger.warning("Health check: queue unavailable: %s", e.detail)
        return {"status": "degraded", "queue_backend": queue.backend, "queue_depth": None}
    return {"status": "healthy", "queue_backend": queue.backend, "queue_depth": depth}
