from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
import logging
import asyncio

from app.config import settings
from app.routers import feedback, health, ingest, webhooks
from app.core.database import init_db, close_db
from app.core.structured_logging import setup_logging
from app.core.errors import FeedbackFunnelError
from app.core.errors.registry import error_registry
from app.core.errors.middleware import (
    feedback_funnel_error_handler,
    request_validation_error_handler,
    unhandled_exception_handler,
)
from app.core.log_middleware import CorrelationMiddleware

# Initialize structured logging before any logger calls
setup_logging()

logger = logging.getLogger(__name__)

API_TITLE = "Feedback Funnel API"
API_VERSION = settings.app_version

API_DESCRIPTION = """
## Feedback Funnel

Collects customer feedback from direct submissions and GitHub issues,
queues it, and enriches each item with an AI sentiment, category and summary.

### Flow
1. `POST /api/ingest` or `POST /api/webhooks/github` stores the feedback and returns 202
2. The worker pops the id from the queue and runs the AI analysis
3. `GET /api/feedback` shows the enriched feedback, newest first
"""

TAGS_METADATA = [
    {
        "name": "health",
        "description": "Health check endpoints for monitoring.",
    },
    {
        "name": "ingest",
        "description": "Direct feedback submission. Responds before enrichment runs.",
    },
    {
        "name": "webhooks",
        "description": "GitHub issue webhook, verified with X-Hub-Signature-256 when a secret is configured.",
    },
    {
        "name": "feedback",
        "description": "Stored feedback with its enrichment.",
    },
]


async def _cancel(task: "asyncio.Task | None", name: str) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("%s cancelled", name)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("Starting %s v%s (queue_backend=%s)", API_TITLE, API_VERSION, settings.queue_backend)

    error_registry.load()
    init_db()
    logger.info("Database initialized")

    from app.services.feedback_store import get_feedback_store
    from app.services.work_queue import close_work_queue, get_work_queue

    store = get_feedback_store()
    queue = get_work_queue()

    worker_task = None
    if settings.run_worker_in_process:
        from app.services.enrichment import build_enricher
        from app.services.feedback_worker import FeedbackWorker

        worker = FeedbackWorker(store, queue, build_enricher())
        worker_task = asyncio.create_task(worker.run())
        logger.info("In-process enrichment worker started")
    elif settings.queue_backend == "memory":
        logger.warning(
            "queue_backend=memory with run_worker_in_process=false; nothing will consume the queue"
        )

    reconcile_task = None
    if settings.reconcile_interval_s > 0:
        from app.services.reconciliation import reconciliation_loop

        reconcile_task = asyncio.create_task(reconciliation_loop(store, queue))

    yield

    logger.info("Shutting down %s...", API_TITLE)
    await _cancel(reconcile_task, "Reconciliation loop")
    await _cancel(worker_task, "Enrichment worker")
    await close_work_queue()
    close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        openapi_tags=TAGS_METADATA,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (request_id + correlation_id in every log)
    app.add_middleware(CorrelationMiddleware)

    app.add_exception_handler(FeedbackFunnelError, feedback_funnel_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)

    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(ingest.router, prefix="/api", tags=["ingest"])
    app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])
    app.include_router(feedback.router, prefix="/api", tags=["feedback"])

    @app.get("/", tags=["health"], summary="API Root")
    async def root():
        return {
            "name": API_TITLE,
            "version": API_VERSION,
            "status": "running",
        }

    return app


# Create the app instance
app = create_app()


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
