"""Rate limiting on mutating requests."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest


def _fake_redis(counts: list[int]) -> MagicMock:
    """A Redis stand-in whose pipeline returns the next INCR result on each execute."""
    pipe = MagicMock()
    pipe.execute = AsyncMock(side_effect=[[count, True] for count in counts])
    redis = MagicMock()
    redis.pipeline.return_value = pipe
    return redis


@pytest.mark.asyncio
async def test_without_redis_requests_pass(client):
    response = await client.post("/api/v1/users", json={"username": "alice"})
    assert response.status_code == 201
    assert "X-RateLimit-Limit" not in response.headers


@pytest.mark.asyncio
async def test_limit_exceeded_returns_429(client):
    redis = _fake_redis([1, 101])
    with patch("stackpulse.middleware.rate_limit.get_redis", return_value=redis):
        ok = await client.post("/api/v1/users", json={"username": "alice"})
        limited = await client.post("/api/v1/users", json={"username": "bob"})

    assert ok.status_code == 201
    assert ok.headers["X-RateLimit-Remaining"] == "99"
    assert limited.status_code == 429
    assert limited.headers["Retry-After"] == "60"
    assert (await client.get("/api/v1/users/bob")).status_code == 404


@pytest.mark.asyncio
async def test_reads_are_not_limited(client):
    redis = _fake_redis([])
    with patch("stackpulse.middleware.rate_limit.get_redis", return_value=redis):
        response = await client.get("/api/v1/users")
        health = await client.get("/health")

    assert response.status_code == 200
    assert health.status_code == 200
    redis.pipeline.assert_not_called()
