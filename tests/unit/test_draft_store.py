from unittest.mock import AsyncMock
from chefdeck.sync.draft_store import MemoryDraftStore, RedisDraftStore, build_draft_store, draft_key


class TestDraftStore:
    def test_key_format(self):
        assert draft_key("c1", "kitchen", "milk") == "inv_draft_c1_kitchen_milk"

    async def test_memory_store(self):
        store = MemoryDraftStore()
        key = draft_key("c1", "kitchen", "milk")
        assert await store.get(key) is None

        await store.set(key, "2.5")
        assert await store.get(key) == "2.5"

        await store.clear(key)
        assert await store.get(key) is None
        await store.clear(key)

    async def test_redis_store_namespaces_keys(self):
        redis_client = AsyncMock()
        redis_client.get.return_value = "3"
        store = RedisDraftStore(redis_client, namespace="bot-1", ttl=60)

        await store.set("inv_draft_c1_s1_i1", "3")
        redis_client.set.assert_awaited_once_with("chefdeck:bot-1:inv_draft_c1_s1_i1", "3", expire=60)

        assert await store.get("inv_draft_c1_s1_i1") == "3"
        redis_client.get.assert_awaited_once_with("chefdeck:bot-1:inv_draft_c1_s1_i1")

        await store.clear("inv_draft_c1_s1_i1")
        redis_client.delete.assert_awaited_once_with("chefdeck:bot-1:inv_draft_c1_s1_i1")

    def test_memory_store_without_redis_url(self, monkeypatch):
        from chefdeck.core.config import settings
        monkeypatch.setattr(settings, "REDIS_URL", None)
        assert isinstance(build_draft_store("bot-1"), MemoryDraftStore)
