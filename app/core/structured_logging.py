"""
JSON logging for the API and the worker.

setup_logging() routes stdlib logging through structlog's ProcessorFormatter
so every module keeps using ``logging.getLogger(__name__)`` and still emits
one JSON object per line, to stderr and to a rotating file under log_dir.

Each line carries service, version, ts, level and logger, plus whatever is
bound in context: request_id/correlation_id from CorrelationMiddleware, and
record_id while the worker handles an item (see log_context()).
"""
from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

import structlog

from app.config import settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

SERVICE_NAME = "feedback-funnel"
APP_VERSION = settings.app_version

_NOISY_LOGGERS = ("httpcore", "httpx", "openai", "asyncio", "watchfiles")


def _inject_context(logger_name: str, method_name: str, event_dict: dict) -> dict:
    event_dict["service"] = SERVICE_NAME
    event_dict["version"] = APP_VERSION
    for key, var in (("request_id", request_id_var), ("correlation_id", correlation_id_var)):
        value = var.get(None)
        if value:
            event_dict[key] = value
    return event_dict


def _lowercase_level(logger_name: str, method_name: str, event_dict: dict) -> dict:
    if event_dict.get("level"):
        event_dict["level"] = event_dict["level"].lower()
    return event_dict


@contextmanager
def log_context(**values) -> Iterator[None]:
    """Bind ``values`` onto every log line emitted inside the block."""
    structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*values)


def _resolve_level(level: int | str | None) -> int:
    level = settings.log_level if level is None else level
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _rotating_file(path: str, max_bytes: int, backup_count: int) -> Optional[logging.Handler]:
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
        )
    except OSError as e:
        # Read-only container filesystem: keep stderr only
        print(f"log file {path} unavailable ({e}); logging to stderr only", file=sys.stderr)
        return None


def setup_logging(
    log_dir: str | None = None,
    log_file: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    log_level: int | str | None = None,
) -> None:
    """Configure structlog and the root logger. Safe to call more than once."""
    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        _lowercase_level,
        structlog.stdlib.add_logger_name,
        _inject_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        # ExtraAdder lifts logger.info(..., extra={...}) keys into the JSON
        foreign_pre_chain=[*shared, structlog.stdlib.ExtraAdder()],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_handler = _rotating_file(
        os.path.join(log_dir or settings.log_dir, log_file or settings.log_file),
        max_bytes, backup_count,
    )
    if file_handler is not None:
        handlers.append(file_handler)

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)
        if isinstance(old, logging.FileHandler):
            old.close()
    root.setLevel(_resolve_level(log_level))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
