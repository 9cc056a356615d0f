"""
Redis-backed backlog queue for browser runs.

The API pushes one job per Result row; the worker pops them only while it
has a free slot, so the backlog stays in Redis instead of in memory.
Cancel flags live next to the queue so either process can see them.
"""

import json
import logging

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

QUEUE_KEY = "qa:runs:queue"
CANCEL_KEY_PREFIX = "qa:runs:cancel:"
CANCEL_FLAG_TTL = 86400  # seconds


class RunQueue:
    def __init__(self, redis: aioredis.Redis):
        self._redis = redis

    @classmethod
    def from_url(cls, url: str) -> "RunQueue":
        return cls(aioredis.from_url(url, decode_responses=True))

    async def enqueue(self, result_id: int, browser: str) -> None:
        """Push a run onto the backlog."""
        await self._redis.lpush(QUEUE_KEY, json.dumps({
            "result_id": result_id,
            "browser": browser,
        }))
        logger.info("Enqueued run for result %s (%s)", result_id, browser)

    async def pop(self, timeout: int = 5) -> dict | None:
        """Block-pop the oldest job, or None after *timeout* seconds."""
        item = await self._redis.brpop(QUEUE_KEY, timeout=timeout)
        if item is None:
            return None
        _, raw = item
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error("Dropping malformed job payload: %r", raw)
            return None

    async def depth(self) -> int:
        return await self._redis.llen(QUEUE_KEY)

    async def request_cancel(self, result_id: int) -> None:
        await self._redis.set(f"{CANCEL_KEY_PREFIX}{result_id}", "1", ex=CANCEL_FLAG_TTL)

    async def is_cancel_requested(self, result_id: int) -> bool:
        return bool(await self._redis.exists(f"{CANCEL_KEY_PREFIX}{result_id}"))

    async def clear_cancel(self, result_id: int) -> None:
        await self._redis.delete(f"{CANCEL_KEY_PREFIX}{result_id}")

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def aclose(self) -> None:
        await self._redis.aclose()
