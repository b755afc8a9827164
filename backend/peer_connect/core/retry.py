"""Bounded re-read-and-retry for operations that can lose a conditional update."""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from peer_connect.errors import Conflict

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_on_conflict(operation: Callable[[], Awaitable[T]], retries: int) -> T:
    """Run ``operation``, re-running it up to ``retries`` more times on Conflict.

    ``operation`` must re-read whatever state it depends on each time it runs.
    The last Conflict propagates once the retries are used up.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Conflict as exc:
            if attempt >= retries:
                raise
            attempt += 1
            logger.debug("Retrying after conflict (%d/%d): %s", attempt, retries, exc.detail)
