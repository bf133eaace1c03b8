"""
Error code system.

FeedbackFunnelError is the base exception for all structured errors.
Raise one of its subclasses (or the base with an explicit code) and the
error middleware produces a structured JSON response from the registry.

Usage:
    from app.core.errors import StoreError
    raise StoreError(detail="insert failed: disk I/O error")
    raise StoreError("FBF-DB-002", detail="update failed")
"""

from __future__ import annotations

import re

CODE_PATTERN = re.compile(r"^FBF-[A-Z]{2,6}-\d{3}$")


class FeedbackFunnelError(Exception):
    """Structured application error tied to the error registry.

    Args:
        code: Registry error code, e.g. "FBF-QUE-001". Subclasses supply a
            default so callers usually pass only ``detail``.
        detail: Internal-only detail message (never exposed to users).
        context: Arbitrary key-value context for structured logging.
    """

    default_code: str | None = None

    def __init__(
        self,
        code: str | None = None,
        detail: str | None = None,
        context: dict | None = None,
    ) -> None:
        code = code or self.default_code
        if code is None or not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.detail = detail
        self.context = context or {}
        super().__init__(f"{code}: {detail}" if detail else code)


class ValidationError(FeedbackFunnelError):
    """Malformed or missing input. Surfaced as 4xx, no side effects."""

    default_code = "FBF-API-001"


class NotFoundError(FeedbackFunnelError):
    default_code = "FBF-API-003"


class AuthError(FeedbackFunnelError):
    """Webhook signature mismatch. Surfaced as 401, no side effects."""

    default_code = "FBF-SEC-001"


class StoreError(FeedbackFunnelError):
    """Record store create/read/update failure."""

    default_code = "FBF-DB-001"


class QueueError(FeedbackFunnelError):
    """Work queue push/pop transport failure."""

    default_code = "FBF-QUE-001"


class EnrichmentError(FeedbackFunnelError):
    """AI enrichment call failed or returned nothing usable."""

    default_code = "FBF-LLM-001"
