"""
Optional async Redis client for the context cache, opened once in the app lifespan.
Empty redis_url or a failed ping means no cache: the client is closed and None is returned.
"""
import logging
from typing import Any

from redis.asyncio import Redis

from chatbot.config import Settings

logger = logging.getLogger(__name__)


def _redact(url: str) -> str:
    return url.split("@")[-1] if "@" in url else url


async def connect_redis(settings: Settings) -> Any:
    """One async Redis client with a bounded connect timeout, or None if disabled/unavailable."""
    url = (settings.redis_url or "").strip()
    if not url:
        logger.info("REDIS_URL not set; context cache disabled")
        return None
    client = Redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=settings.redis_connect_timeout_seconds,
    )
    try:
        await client.ping()
    except Exception as e:
        logger.warning("Redis unavailable at %s (context cache disabled): %s", _redact(url), e, exc_info=False)
        await close_redis(client)
        return None
    logger.info("Redis context cache connected: %s", _redact(url))
    return client


async def close_redis(client: Any) -> None:
    """Graceful shutdown: close the Redis connection pool."""
    if client is None:
        return
    try:
        await client.aclose()
    except Exception as e:
        logger.warning("Redis close error: %s", e)
