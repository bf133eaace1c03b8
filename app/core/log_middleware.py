"""
Per-request correlation for the ingest API.

Every request gets a request id and a correlation id, bound into the
contextvars that structured_logging stamps onto each log line and echoed
back on the response. GitHub webhook deliveries reuse X-GitHub-Delivery as
the correlation id so a stored record can be traced to the delivery that
produced it.
"""
from __future__ import annotations

import logging
import time
import uuid
from typing import Tuple

from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.structured_logging import correlation_id_var, request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"
CORRELATION_ID_HEADER = "x-correlation-id"
GITHUB_DELIVERY_HEADER = "x-github-delivery"


def _inbound_ids(headers: Headers) -> Tuple[str, str]:
    request_id = headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    correlation_id = (
        headers.get(CORRELATION_ID_HEADER)
        or headers.get(GITHUB_DELIVERY_HEADER)
        or uuid.uuid4().hex
    )
    return request_id, correlation_id


class CorrelationMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id, correlation_id = _inbound_ids(request.headers)
        tokens = (request_id_var.set(request_id), correlation_id_var.set(correlation_id))

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            log = logger.warning if status_code >= 500 else logger.info
            log(
                "request_completed",
                extra={
                    "http.method": request.method,
                    "http.path": request.url.path,
                    "http.status_code": status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
            request_id_var.reset(tokens[0])
            correlation_id_var.reset(tokens[1])

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
