"""Process-wide Redis connection backing the session event bus."""

import logging

import redis.asyncio as aioredis

from peer_connect.config import settings

logger = logging.getLogger(__name__)

_client: aioredis.Redis | None = None


def get_redis_client() -> aioredis.Redis:
    """The shared client, created on first use.

    Connects lazily and gives up quickly, so an outage costs each publish a
    short timeout instead of stalling the request.
    """
    global _client
    if _client is None:
        _client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT_SECONDS,
        )
        logger.debug("Created Redis client for %s", settings.REDIS_URL)
    return _client


async def close_redis() -> None:
    global _client
    if _client is None:
        return
    await _client.aclose()
    _client = None
