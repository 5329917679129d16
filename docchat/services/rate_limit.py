"""Fixed-window per-user rate limiting on Redis."""

import logging
import time
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from docchat.core.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """``INCR`` a per-user, per-bucket, per-window counter.

    Fails open: if Redis is unreachable the request is allowed and the error is
    logged.
    """

    def __init__(self, client: Optional[aioredis.Redis] = None):
        self.client = client or aioredis.from_url(settings.REDIS_URL, decode_responses=True)

    @staticmethod
    def _key(identity: str, bucket: str, window_seconds: int, now: float) -> str:
        window = int(now // window_seconds)
        return f"ratelimit:{bucket}:{identity}:{window}"

    async def allow(
        self,
        identity: str,
        bucket: str,
        window_seconds: int,
        limit: int,
        now: Optional[float] = None,
    ) -> bool:
        """Count one request and report whether it is within the limit."""
        if now is None:
            now = time.time()
        key = self._key(identity, bucket, window_seconds, now)
        try:
            count = await self.client.incr(key)
            if count == 1:
                await self.client.expire(key, window_seconds)
        except (RedisError, OSError) as e:
            logger.error(f"rate-limit check failed, allowing request: {str(e)}")
            return True

        if count > limit:
            logger.info(f"Rate limit hit for bucket {bucket}")
            return False
        return True

    async def allow_chat(self, identity: str) -> bool:
        return await self.allow(
            identity,
            settings.RATE_LIMIT_CHAT_BUCKET,
            settings.RATE_LIMIT_CHAT_WINDOW_SECONDS,
            settings.RATE_LIMIT_CHAT_LIMIT,
        )
