"""Session event bus - best-effort push of session changes over Redis pub/sub.

Polling the session view stays authoritative; a lost event only delays what a
subscribed client sees until its next poll.
"""

import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def session_channel(session_id: str) -> str:
    return f"peer_session:{session_id}"


class SessionEventBus:
    def __init__(self, redis: aioredis.Redis | None):
        self.redis = redis

    async def publish(self, session_id: str, event: str, **data) -> None:
        if self.redis is None:
            return
        payload = json.dumps({"event": event, "session_id": session_id, **data})
        try:
            await self.redis.publish(session_channel(session_id), payload)
        except (RedisError, OSError):
            logger.warning("Could not publish %s for session %s", event, session_id, exc_info=True)

    async def is_reachable(self) -> bool:
        if self.redis is None:
            return False
        try:
            return bool(await self.redis.ping())
        except (RedisError, OSError):
            logger.warning("Event bus unreachable", exc_info=True)
            return False
