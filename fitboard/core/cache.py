"""
Redis connection for check-in change notifications.

Live leaderboards listen on Redis pub/sub; the check-in write path publishes.
Leaderboard reads never touch Redis, so an unreachable server only disables
live refresh.
"""

import logging
from typing import Any, Optional, Union

import redis

from fitboard.core.config import settings

logger = logging.getLogger(__name__)


class DummyRedis:
    """Stands in for Redis when the server is unreachable. Publishes go nowhere."""

    def publish(self, channel: str, message: Any) -> int:
        return 0

    def ping(self) -> bool:
        return False


RedisClient = Union[redis.Redis, DummyRedis]

_redis_client: Optional[RedisClient] = None


def get_redis_client() -> Optional[RedisClient]:
    """
    Shared Redis client, connected on first use.

    Returns None when no REDIS_URL is configured and a DummyRedis when the
    server does not answer a ping.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_url = settings.redis_connection_url
    if not redis_url:
        return None

    try:
        client = redis.from_url(redis_url, socket_connect_timeout=2)
        client.ping()
        _redis_client = client
    except Exception as exc:
        logger.warning(
            f"Redis unavailable ({exc}), live leaderboards will not refresh"
        )
        _redis_client = DummyRedis()

    return _redis_client


def supports_pubsub(client: Optional[RedisClient]) -> bool:
    """True when the client can deliver pub/sub messages (DummyRedis cannot)."""
    return client is not None and hasattr(client, "pubsub")
