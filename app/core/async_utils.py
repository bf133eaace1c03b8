"""
Thread offload for blocking store calls.

The record store is a synchronous SQLModel session API; the ingest
endpoints, the worker and reconciliation all reach it through run_sync()
so the event loop keeps serving requests and popping the queue meanwhile.
"""

import asyncio
import functools
import logging
import time
from typing import Any, Callable, Optional, TypeVar

from app.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _describe(func: Callable[..., Any]) -> str:
    target = func.func if isinstance(func, functools.partial) else func
    return getattr(target, "__qualname__", None) or repr(target)


async def run_sync(
    func: Callable[..., T],
    *args: Any,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> T:
    """Run ``func(*args, **kwargs)`` in a worker thread.

    ``timeout`` defaults to ``settings.store_call_timeout_s``. Exceptions
    raised by ``func`` propagate unchanged; running out of time raises
    TimeoutError (the thread itself is not interrupted).
    """
    limit = settings.store_call_timeout_s if timeout is None else timeout
    call = functools.partial(func, *args, **kwargs)
    started = time.perf_counter()
    try:
        return await asyncio.wait_for(asyncio.to_thread(call), timeout=limit)
    except asyncio.TimeoutError:
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.warning("%s still running after %.0fms; giving up", _describe(call), elapsed_ms)
        raise TimeoutError(f"{_describe(call)} exceeded {limit}s")
