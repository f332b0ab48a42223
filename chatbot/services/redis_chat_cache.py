"""
Redis cache for conversation context windows. Cache-Aside: Redis is read-through cache only.
All Redis errors are handled internally; never raise to caller. System works if Redis is down.
Key: chat:{conversation_id} — Redis LIST of JSON strings {id, sender, content}. Last N items, TTL 1 day.

Only warm() creates a key. Appends use RPUSHX so a key that was dropped after a
failed write stays absent until the next DB load rebuilds it.
"""
import json
import logging
from typing import Any

from chatbot.config import get_settings

logger = logging.getLogger(__name__)

CHAT_KEY_PREFIX = "chat:"


def _key(conversation_id: str) -> str:
    return f"{CHAT_KEY_PREFIX}{conversation_id}"


def _serialize(message: dict) -> str:
    return json.dumps({
        "id": message.get("id"),
        "sender": message["sender"],
        "content": message.get("content", ""),
    })


def _deserialize(s: str) -> dict | None:
    try:
        data = json.loads(s)
        if isinstance(data, dict) and data.get("sender") in ("user", "ai"):
            return {"id": data.get("id"), "sender": data["sender"], "content": data.get("content", "")}
    except (json.JSONDecodeError, TypeError):
        pass
    return None


class RedisChatCache:
    """
    Async Redis cache for context windows. LIST-based: RPUSHX, LTRIM, EXPIRE.
    All methods swallow Redis errors and log; caller gets None or no-op on failure.
    """

    def __init__(self, redis_client: Any, ttl_seconds: int | None = None, limit: int | None = None):
        settings = get_settings()
        self._redis = redis_client
        self._ttl = ttl_seconds or settings.chat_cache_ttl_seconds
        self._limit = limit if limit is not None else settings.chat_context_max_messages

    async def get_last_messages(self, conversation_id: str) -> list[dict] | None:
        """
        Cache-Aside read: LRANGE chat:{conversation_id} -limit -1.
        Returns list of {id, sender, content} or None on miss/error (caller should hit DB).
        """
        if not self._redis or self._limit <= 0:
            return None
        try:
            raw_list = await self._redis.lrange(_key(conversation_id), -self._limit, -1)
            if not raw_list:
                return None
            out = []
            for item in raw_list:
                s = item.decode() if isinstance(item, bytes) else item
                m = _deserialize(s)
                if m:
                    out.append(m)
            return out if out else None
        except Exception as e:
            logger.warning("Redis chat cache get failed for conversation %s: %s", conversation_id, e, exc_info=False)
            return None

    async def append_message(self, conversation_id: str, message: dict) -> bool:
        """
        After DB save: RPUSHX one message, LTRIM to last N, EXPIRE.
        On Redis error the key is dropped so no later read sees a list with a gap.
        Returns False only when Redis failed; callers must not append further this turn.
        """
        if not self._redis or self._limit <= 0:
            return True
        key = _key(conversation_id)
        try:
            if await self._redis.rpushx(key, _serialize(message)):
                await self._redis.ltrim(key, -self._limit, -1)
                await self._redis.expire(key, self._ttl)
            return True
        except Exception as e:
            logger.warning("Redis chat cache append failed for conversation %s: %s", conversation_id, e, exc_info=False)
            await self.invalidate(conversation_id)
            return False

    async def invalidate(self, conversation_id: str) -> None:
        """Best-effort DEL. A list that survives a failed DEL is caught by the caller's newest-id check."""
        if not self._redis:
            return
        try:
            await self._redis.delete(_key(conversation_id))
        except Exception as e:
            logger.warning("Redis chat cache invalidate failed for conversation %s: %s", conversation_id, e, exc_info=False)

    async def warm(self, conversation_id: str, messages: list[dict]) -> bool:
        """
        Cache-Aside warm on DB miss: replace list with the window loaded from DB, set EXPIRE.
        An empty window clears the key. Returns False when Redis failed (list may still be stale).
        """
        if not self._redis or self._limit <= 0:
            return True
        try:
            key = _key(conversation_id)
            pipe = self._redis.pipeline()
            pipe.delete(key)  # start fresh so order is correct
            if messages:
                pipe.rpush(key, *[_serialize(m) for m in messages])
                pipe.ltrim(key, -self._limit, -1)
                pipe.expire(key, self._ttl)
            await pipe.execute()
            return True
        except Exception as e:
            logger.warning("Redis chat cache warm failed for conversation %s: %s", conversation_id, e, exc_info=False)
            return False
