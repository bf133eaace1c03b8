"""
Work Queue
==========

Durable FIFO of feedback record ids, shared by the ingest producers and
the enrichment worker.

RedisWorkQueue:
    LPUSH onto a list key, BRPOP from the same key, so the oldest entry comes out first.
    A pop removes the entry immediately; there is no ack/visibility
    protocol, so an id popped by a worker that then crashes is gone.

InMemoryWorkQueue:
    asyncio.Queue with the same contract, for single-process runs
    (queue_backend=memory) and tests.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Optional, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.config import settings
from app.core.errors import QueueError

logger = logging.getLogger(__name__)


class WorkQueue(Protocol):
    backend: str

    async def push(self, record_id: str) -> int: ...

    async def pop(self, timeout: Optional[float] = None) -> Optional[str]: ...

    async def depth(self) -> int: ...

    async def close(self) -> None: ...


class RedisWorkQueue:
    """Redis list used as a FIFO of record ids."""

    backend = "redis"

    def __init__(self, client: aioredis.Redis, name: str = "feedback_queue"):
        self.redis = client
        self.name = name

    @classmethod
    def from_url(cls, url: str, name: str) -> "RedisWorkQueue":
        return cls(aioredis.from_url(url, decode_responses=True), name=name)

    async def push(self, record_id: str) -> int:
        """Append an id. Returns the queue depth after the push."""
        try:
            depth = await self.redis.lpush(self.name, record_id)
        except (RedisError, OSError) as e:
            raise QueueError("FBF-QUE-001", detail=f"LPUSH failed: {e}", context={"record_id": record_id})
        logger.debug("Queued %s on %s (queue_depth=%d)", record_id, self.name, depth)
        return int(depth)

    async def pop(self, timeout: Optional[float] = None) -> Optional[str]:
        """Blocking pop of the oldest id.

        ``timeout=None`` waits forever. A bounded wait is rounded up to whole
        seconds (BRPOP granularity) and returns None when nothing arrived.
        """
        block = 0 if timeout is None else max(1, math.ceil(timeout))
        try:
            result = await self.redis.brpop([self.name], timeout=block)
        except (RedisError, OSError) as e:
            raise QueueError("FBF-QUE-002", detail=f"BRPOP failed: {e}")
        if result is None:
            return None
        _key, value = result
        return value.decode() if isinstance(value, bytes) else str(value)

    async def depth(self) -> int:
        try:
            return int(await self.redis.llen(self.name))
        except (RedisError, OSError) as e:
            raise QueueError("FBF-QUE-002", detail=f"LLEN failed: {e}")

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except (RedisError, OSError) as e:
            raise QueueError("FBF-QUE-002", detail=f"PING failed: {e}")

    async def close(self) -> None:
        await self.redis.aclose()


class InMemoryWorkQueue:
    """Process-local FIFO with the WorkQueue contract."""

    backend = "memory"

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue()

    async def push(self, record_id: str) -> int:
        self._queue.put_nowait(record_id)
        return self._queue.qsize()

    async def pop(self, timeout: Optional[float] = None) -> Optional[str]:
        if timeout is None:
            return await self._queue.get()
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def depth(self) -> int:
        return self._queue.qsize()

    def snapshot(self) -> list[str]:
        """Pending ids, oldest first (inspection only)."""
        return list(self._queue._queue)

    async def close(self) -> None:
        return None


_instance: Optional[WorkQueue] = None


def get_work_queue() -> WorkQueue:
    """Get the process-wide WorkQueue for the configured backend."""
    global _instance
    if _instance is None:
        if settings.queue_backend == "memory":
            _instance = InMemoryWorkQueue()
        else:
            _instance = RedisWorkQueue.from_url(settings.redis_url, settings.queue_name)
        logger.info("Work queue ready (backend=%s, name=%s)", _instance.backend, settings.queue_name)
    return _instance


async def close_work_queue() -> None:
    global _instance
    if _instance is not None:
        await _instance.close()
        _instance = None
