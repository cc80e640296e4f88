# backend/leadverify/services/dispatch.py
import json
import logging
from typing import Optional, Protocol

import redis.asyncio as redis

from leadverify.config import settings

logger = logging.getLogger("leadverify.dispatch")


class JobDispatcher(Protocol):
    async def dispatch(self, job_id: str) -> None:
        ...


class RedisJobDispatcher:
    """Pushes ``{"job_id": ...}`` onto the worker queue."""

    def __init__(self, redis_url: Optional[str] = None, queue_key: Optional[str] = None):
        self.redis_url = redis_url or settings.REDIS_URL
        self.queue_key = queue_key or settings.QUEUE_KEY

    async def dispatch(self, job_id: str) -> None:
        r = redis.from_url(self.redis_url)
        try:
            await r.rpush(self.queue_key, json.dumps({"job_id": job_id}))
        finally:
            await r.aclose()
        logger.info("Validation job queued job=%s queue=%s", job_id, self.queue_key)


def get_dispatcher() -> JobDispatcher:
    return RedisJobDispatcher()
