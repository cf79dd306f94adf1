"""
Fixed-window rate limiting on Redis.

Used to throttle OTP regeneration per request and challenge.
"""

import logging

from redis.exceptions import RedisError

from backend.app.core.exceptions import RateLimitedError

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "ratelimit:"


class RateLimiter:
    """
    Allow at most ``limit`` hits per ``window_seconds`` for a key.

    The first hit in a window creates the counter with a TTL; later hits only
    increment it until the key expires. When Redis is unreachable the limiter
    lets the call through.
    """

    def __init__(self, client, limit: int, window_seconds: int, prefix: str = RATE_LIMIT_PREFIX):
        self.client = client
        self.limit = limit
        self.window_seconds = window_seconds
        self.prefix = prefix

    async def hit(self, key: str) -> int:
        """
        Record one hit for ``key``.

        The counter is created together with its TTL before it is incremented,
        so a counter never exists without an expiry.

        Returns:
            Number of hits in the current window

        Raises:
            RateLimitedError: if the hit exceeds the limit
        """
        redis_key = f"{self.prefix}{key}"
        try:
            await self.client.set(redis_key, 0, ex=self.window_seconds, nx=True)
            count = await self.client.incr(redis_key)
            if count > self.limit:
                ttl = await self.client.ttl(redis_key)
                if ttl is None or ttl < 0:
                    # Key outlived its TTL between SET and INCR
                    await self.client.expire(redis_key, self.window_seconds)
                    ttl = self.window_seconds
                raise RateLimitedError(retry_after_seconds=ttl)
        except RedisError as e:
            logger.warning("Rate limiter unavailable for %s, allowing call: %s", key, e)
            return 0

        return count
