"""Shared Redis client: redirect lookup cache and the click channel.

Every helper treats Redis as optional. Connection and command errors are
logged and reported as a miss or a failed publish, never raised, so a Redis
outage slows redirects down instead of breaking them.
"""

import redis.asyncio as redis
import structlog

from clicktrail.core.config import get_settings

logger = structlog.get_logger()

LINK_CACHE_PREFIX = "clicktrail:link:"

_redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Get the shared client, connecting lazily on first use."""
    global _redis_client
    if _redis_client is None:
        url = get_settings().redis_url
        _redis_client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        logger.info("Redis client initialized", url=url)
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")


def link_cache_key(short_code: str) -> str:
    return LINK_CACHE_PREFIX + short_code


async def get_cached_link(short_code: str) -> str | None:
    """Cached link snapshot as JSON, or None on a miss or a Redis error."""
    try:
        payload = await (await get_redis()).get(link_cache_key(short_code))
    except redis.RedisError as e:
        logger.warning("Link cache read failed", short_code=short_code, error=str(e))
        return None
    logger.debug("Link cache lookup", short_code=short_code, hit=payload is not None)
    return payload


async def cache_link(short_code: str, payload: str, ttl: int) -> None:
    """Store a link snapshot for ``ttl`` seconds."""
    try:
        await (await get_redis()).set(link_cache_key(short_code), payload, ex=ttl)
    except redis.RedisError as e:
        logger.warning("Link cache write failed", short_code=short_code, error=str(e))


async def invalidate_link_cache(short_code: str) -> None:
    """Drop a cached link after its status changed."""
    try:
        await (await get_redis()).delete(link_cache_key(short_code))
    except redis.RedisError as e:
        logger.warning("Link cache invalidation failed", short_code=short_code, error=str(e))


async def publish_click_event(channel: str, payload: str) -> bool:
    """Publish a serialized redirect on the click channel.

    Pub/Sub does not keep messages, so one that reaches no subscriber is
    gone; that case counts as a failed publish.

    Returns:
        True if at least one subscriber received the message.
    """
    try:
        receivers = await (await get_redis()).publish(channel, payload)
    except redis.RedisError as e:
        logger.warning("Click publish failed", channel=channel, error=str(e))
        return False
    if receivers == 0:
        logger.warning("Click published with no subscribers", channel=channel)
        return False
    return True
