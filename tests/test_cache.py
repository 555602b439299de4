"""Tests for the response cache and cache key builders."""
from unittest.mock import Mock

import pytest

from unigate.adapters.cache import CacheService
from unigate.adapters.keys import batch_key, chat_conversation_prefix, chat_key, embedding_key
from unigate.core.errors import CacheError
from unigate.models.chat import ChatMessage, ToolDefinition, UnifiedChatRequest


class TestCacheService:

    @pytest.mark.asyncio
    async def test_set_and_get(self):
        cache = CacheService()
        await cache.set("k", '{"v": 1}', ttl=60)
        assert await cache.try_get("k") == (True, '{"v": 1}')
        assert await cache.try_get("other") == (False, None)

    @pytest.mark.asyncio
    async def test_expired_entries_are_dropped(self):
        clock = Mock(return_value=1000.0)
        cache = CacheService(clock=clock)
        await cache.set("k", "v", ttl=10)
        clock.return_value = 1009.0
        assert await cache.try_get("k") == (True, "v")
        clock.return_value = 1010.0
        assert await cache.try_get("k") == (False, None)
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_invalidate_by_prefix(self):
        cache = CacheService()
        await cache.set("chat:p:aaa:m:1", "x", ttl=60)
        await cache.set("chat:p:aaa:m:2", "x", ttl=60)
        await cache.set("chat:p:bbb:m:1", "x", ttl=60)
        assert await cache.invalidate_by_prefix("chat:p:aaa:") == 2
        assert await cache.try_get("chat:p:bbb:m:1") == (True, "x")
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_full_cache_evicts_soonest_expiry(self):
        cache = CacheService(max_size=2)
        await cache.set("short", "1", ttl=5)
        await cache.set("long", "2", ttl=500)
        await cache.set("new", "3", ttl=100)
        assert (await cache.try_get("short"))[0] is False
        assert (await cache.try_get("long"))[0] is True
        assert (await cache.try_get("new"))[0] is True

    @pytest.mark.asyncio
    async def test_rejects_unserialized_values(self):
        cache = CacheService()
        with pytest.raises(CacheError):
            await cache.set("k", {"not": "text"}, ttl=60)
        with pytest.raises(CacheError):
            await cache.invalidate_by_prefix("")

    @pytest.mark.asyncio
    async def test_clear(self):
        cache = CacheService()
        await cache.set("a", "1", ttl=60)
        await cache.clear()
        assert len(cache) == 0


class TestKeys:

    def test_chat_key_is_scoped_by_conversation(self, registry, make_request):
        config = registry.get_chat_config("fake")
        key = chat_key(make_request(conversation_id="conv-1"), config)
        assert key.startswith(chat_conversation_prefix("fake", "conv-1"))
        assert key.startswith("chat:fake:")
        assert ":fake-model:" in key

    def test_identical_requests_share_a_key(self, registry, make_request):
        config = registry.get_chat_config("fake")
        assert chat_key(make_request(), config) == chat_key(make_request(), config)

    def test_stream_flag_does_not_change_key(self, registry, make_request):
        config = registry.get_chat_config("fake")
        assert chat_key(make_request(stream=True), config) == chat_key(make_request(stream=False), config)

    @pytest.mark.parametrize("change", [
        {"text": "Different"},
        {"force_json": True},
        {"tools": [ToolDefinition(name="t")]},
        {"conversation_id": "conv-2"},
    ])
    def test_content_changes_key(self, registry, make_request, change):
        config = registry.get_chat_config("fake")
        assert chat_key(make_request(**change), config) != chat_key(make_request(), config)

    def test_tool_call_ids_are_part_of_key(self, registry):
        config = registry.get_chat_config("fake")
        first = UnifiedChatRequest("c", [ChatMessage(role="tool", content="ok", tool_call_id="a")])
        second = UnifiedChatRequest("c", [ChatMessage(role="tool", content="ok", tool_call_id="b")])
        assert chat_key(first, config) != chat_key(second, config)

    def test_conversation_ids_with_separators_do_not_collide(self):
        assert not chat_conversation_prefix("p", "a:b").startswith(chat_conversation_prefix("p", "a"))

    def test_embedding_key(self, registry):
        config = registry.get_embedding_config("fake")
        key = embedding_key("hello", config)
        assert key.startswith("embed:fake:fake-embed:")
        assert key != embedding_key("hello!", config)
        assert batch_key([key, "x"]) == f"{key}|x"
