"""Shared Redis client for the update relay and the rate limiter.

Redis is optional: with ``event_relay = "local"`` it is never connected and
callers fall back to in-process behaviour.
"""

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str) -> redis.Redis:
    """Connect the shared client. Each pub/sub listener takes one pooled connection."""
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
        health_check_interval=30,
        client_name="stackpulse",
    )
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Return the shared client. Raises RuntimeError when the relay is not Redis-backed."""
    if _client is None:
        msg = "Redis not initialized. Set STACKPULSE_EVENT_RELAY=redis to enable it."
        raise RuntimeError(msg)
    return _client


async def ping_redis() -> str:
    """Readiness check result for the shared client."""
    try:
        await get_redis().ping()
    except (RuntimeError, redis.RedisError) as exc:
        return f"error: {exc}"
    return "ok"
