import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional
from chefdeck.core.config import settings
from chefdeck.core.redis import RedisClient

logger = logging.getLogger(__name__)


def draft_key(cycle_id: str, sheet_id: str, item_id: str) -> str:
    return f"inv_draft_{cycle_id}_{sheet_id}_{item_id}"


class DraftStore(ABC):
    """Unconfirmed quantity input, kept until the matching write succeeds"""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def clear(self, key: str) -> None:
        pass


class MemoryDraftStore(DraftStore):
    def __init__(self):
        self._values: Dict[str, str] = {}

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def clear(self, key: str) -> None:
        self._values.pop(key, None)

    def __len__(self):
        return len(self._values)


class RedisDraftStore(DraftStore):
    """Drafts in Redis so they outlive the client process"""

    def __init__(self, redis_client: RedisClient, namespace: str = "default", ttl: Optional[int] = None):
        self.redis_client = redis_client
        self.namespace = namespace
        self.ttl = settings.DRAFT_KEY_TTL_SECONDS if ttl is None else ttl

    def _key(self, key: str) -> str:
        return f"chefdeck:{self.namespace}:{key}"

    async def set(self, key: str, value: str) -> None:
        await self.redis_client.set(self._key(key), value, expire=self.ttl or None)

    async def get(self, key: str) -> Optional[str]:
        return await self.redis_client.get(self._key(key))

    async def clear(self, key: str) -> None:
        await self.redis_client.delete(self._key(key))


def build_draft_store(namespace: str = "default") -> DraftStore:
    if settings.REDIS_URL:
        logger.info(f"📝 Using Redis draft store for {namespace}")
        return RedisDraftStore(RedisClient(settings.REDIS_URL), namespace=namespace)
    return MemoryDraftStore()
