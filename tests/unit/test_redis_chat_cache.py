"""
Tests for the Redis context cache. A fake async Redis stands in for the server;
the cache must trim to the window size, only extend lists created by warm(),
and never raise when Redis fails.
"""

import asyncio

from chatbot.services.redis_chat_cache import RedisChatCache


def _msg(sender, content, id=None):
    return {"id": id or f"id-{content}", "sender": sender, "content": content}


class TestRedisChatCache:
    def test_miss_returns_none(self, fake_redis):
        cache = RedisChatCache(fake_redis, ttl_seconds=60, limit=3)
        assert asyncio.run(cache.get_last_messages("c1")) is None

    def test_append_trims_to_limit_and_sets_ttl(self, fake_redis):
        cache = RedisChatCache(fake_redis, ttl_seconds=60, limit=3)

        async def scenario():
            await cache.warm("c1", [_msg("user", "m0")])
            for i in range(1, 5):
                await cache.append_message("c1", _msg("user" if i % 2 == 0 else "ai", f"m{i}"))
            return await cache.get_last_messages("c1")

        messages = asyncio.run(scenario())
        assert [m["content"] for m in messages] == ["m2", "m3", "m4"]
        assert [m["id"] for m in messages] == ["id-m2", "id-m3", "id-m4"]
        assert fake_redis.ttls["chat:c1"] == 60

    def test_append_does_not_create_a_list(self, fake_redis):
        cache = RedisChatCache(fake_redis, ttl_seconds=60, limit=20)

        assert asyncio.run(cache.append_message("c1", _msg("user", "orphan"))) is True
        assert "chat:c1" not in fake_redis.lists

    def test_failed_append_drops_the_list(self, flaky_redis):
        redis = flaky_redis(1)
        cache = RedisChatCache(redis, ttl_seconds=60, limit=20)

        async def scenario():
            await cache.warm("c1", [_msg("user", "a"), _msg("ai", "b")])
            return await cache.append_message("c1", _msg("user", "c"))

        assert asyncio.run(scenario()) is False
        assert "chat:c1" not in redis.lists

    def test_warm_replaces_existing_list(self, fake_redis):
        cache = RedisChatCache(fake_redis, ttl_seconds=60, limit=20)

        async def scenario():
            await cache.warm("c1", [_msg("user", "stale")])
            assert await cache.warm("c1", [_msg("user", "a"), _msg("ai", "b")]) is True
            return await cache.get_last_messages("c1")

        assert asyncio.run(scenario()) == [_msg("user", "a"), _msg("ai", "b")]

    def test_warm_with_empty_window_clears_the_list(self, fake_redis):
        cache = RedisChatCache(fake_redis, ttl_seconds=60, limit=20)

        async def scenario():
            await cache.warm("c1", [_msg("user", "stale")])
            await cache.warm("c1", [])
            return await cache.get_last_messages("c1")

        assert asyncio.run(scenario()) is None
        assert "chat:c1" not in fake_redis.lists

    def test_conversations_are_isolated(self, fake_redis):
        cache = RedisChatCache(fake_redis, ttl_seconds=60, limit=20)

        async def scenario():
            await cache.warm("c1", [_msg("user", "one")])
            await cache.warm("c2", [_msg("user", "two")])
            await cache.append_message("c2", _msg("ai", "three"))
            return await cache.get_last_messages("c1")

        assert asyncio.run(scenario()) == [_msg("user", "one")]

    def test_corrupt_entries_are_skipped(self, fake_redis):
        fake_redis.lists["chat:c1"] = [
            "{not json",
            '{"id": "x1", "sender": "system", "content": "x"}',
            '{"id": "x2", "sender": "ai", "content": "ok"}',
        ]
        cache = RedisChatCache(fake_redis, ttl_seconds=60, limit=20)
        assert asyncio.run(cache.get_last_messages("c1")) == [_msg("ai", "ok", id="x2")]

    def test_entries_without_id_read_as_none(self, fake_redis):
        fake_redis.lists["chat:c1"] = ['{"sender": "user", "content": "old"}']
        cache = RedisChatCache(fake_redis, ttl_seconds=60, limit=20)
        assert asyncio.run(cache.get_last_messages("c1")) == [{"id": None, "sender": "user", "content": "old"}]

    def test_redis_failures_are_swallowed(self, broken_redis):
        cache = RedisChatCache(broken_redis, ttl_seconds=60, limit=20)

        async def scenario():
            appended = await cache.append_message("c1", _msg("user", "hi"))
            warmed = await cache.warm("c1", [_msg("user", "hi")])
            await cache.invalidate("c1")
            return appended, warmed, await cache.get_last_messages("c1")

        assert asyncio.run(scenario()) == (False, False, None)

    def test_no_client_is_a_no_op(self):
        cache = RedisChatCache(None, ttl_seconds=60, limit=20)
        assert asyncio.run(cache.append_message("c1", _msg("user", "hi"))) is True
        assert asyncio.run(cache.get_last_messages("c1")) is None
