import redis.asyncio as redis
from chefdeck.core.config import settings
import logging

logger = logging.getLogger(__name__)

class RedisClient:
    def __init__(self, url: str = None):
        self.url = url or settings.REDIS_URL
        self.redis = None

    async def connect(self):
        """Connect to Redis"""
        try:
            self.redis = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True
            )
            # Test connection
            await self.redis.ping()
            logger.info("✅ Redis connected successfully")
        except Exception as e:
            logger.error(f"❌ Redis connection failed: {str(e)}")
            raise

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.close()
            self.redis = None
            logger.info("Redis disconnected")

    async def get(self, key: str):
        """Get value by key"""
        if not self.redis:
            await self.connect()
        return await self.redis.get(key)

    async def set(self, key: str, value: str, expire: int = None):
        """Set key-value pair"""
        if not self.redis:
            await self.connect()
        return await self.redis.set(key, value, ex=expire)

    async def delete(self, key: str):
        """Delete key"""
        if not self.redis:
            await self.connect()
        return await self.redis.delete(key)
