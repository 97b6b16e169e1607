from typing import Optional, Tuple
import logging
from redis import asyncio as aioredis
from app.core.config import settings

logger = logging.getLogger(__name__)

class RedisCache:
    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or settings.REDIS_URL
        self.redis: Optional[aioredis.Redis] = None

    async def connect(self):
        if not self.redis:
            try:
                self.redis = aioredis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True
                )
                logger.info("Connected to Redis cache.")
            except Exception as e:
                logger.error(f"Failed to connect to Redis: {e}")

    async def hit(self, key: str, window_seconds: int) -> Optional[Tuple[int, int]]:
        """
        Count one hit in a fixed window
        - Returns (hits in window, seconds until the window resets)
        - Returns None when Redis is unavailable
        """
        if not self.redis:
            await self.connect()
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, window_seconds, nx=True)
                pipe.ttl(key)
                count, _, ttl = await pipe.execute()
            return int(count), max(int(ttl), 1)
        except Exception as e:
            logger.error(f"Redis rate limit error for key {key}: {e}")
            return None

    async def close(self):
        if self.redis:
            await self.redis.aclose()
            self.redis = None

# Singleton instance
redis_cache = RedisCache()
