# ruff: noqa: PLW0603
"""Redis connection and progression event publishing.

The engine does not deliver notifications itself; it publishes progression
events (certificate issued) on a per-learner Pub/Sub channel and the
notifications service fans them out. Redis is optional: without it events
are skipped and progression is unaffected.
"""

import json
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from coursepath.config import get_settings
from coursepath.core.context import get_request_id
from coursepath.core.logging import get_logger


logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


def progression_channel(user_id: str) -> str:
    """Per-learner channel for progression events."""
    return f"progression:user:{user_id}"


async def init_redis() -> redis.Redis | None:
    """Connect the shared client, or return None when events are disabled.

    Raises:
        redis.ConnectionError: If Redis is enabled but unreachable
    """
    global _redis_client

    settings = get_settings()
    if not settings.progression_events_enabled:
        logger.info("progression_events_disabled")
        return None

    client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )
    try:
        await client.ping()
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        await client.aclose()
        raise

    _redis_client = client
    logger.info("redis_connected", url=settings.redis_url)
    return _redis_client


async def shutdown_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_disconnected")


def get_redis() -> redis.Redis | None:
    """Get Redis client instance (None when running without Redis)."""
    return _redis_client


async def publish_progression_event(
    client: redis.Redis | None,
    user_id: str,
    event_type: str,
    data: dict[str, Any],
) -> bool:
    """Publish a progression event for a learner.

    Failures are logged and swallowed: the progression write that produced
    the event has already been committed.

    Returns:
        True if the message reached Redis
    """
    if client is None:
        return False

    message = {
        "type": event_type,
        "data": data,
        "published_at": datetime.now(UTC).isoformat(),
        "request_id": get_request_id() or None,
    }
    try:
        await client.publish(progression_channel(user_id), json.dumps(message))
    except RedisError as e:
        logger.warning(
            "progression_event_publish_failed",
            event_type=event_type,
            user_id=user_id,
            error=str(e),
        )
        return False
    return True
