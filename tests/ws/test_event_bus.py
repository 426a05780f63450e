"""Update event bus: scheduling, drain, relay channels and error containment."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from stackpulse.events.bus import UpdateEventBus
from stackpulse.events.schemas import ForumSnapshot, ForumUpdatePayload
from stackpulse.events.topics import Topic, validate_topic
from stackpulse.ws.manager import ConnectionManager


def _manager() -> MagicMock:
    manager = MagicMock(spec=ConnectionManager)
    manager.broadcast = AsyncMock(return_value=1)
    manager.send_to_user = AsyncMock(return_value=1)
    return manager


def _forum_payload() -> ForumUpdatePayload:
    forum = ForumSnapshot(id=3, name="python", created_by="mod", created_at="2024-01-01T00:00:00Z")
    return ForumUpdatePayload(forum=forum, type="updated")


class TestTopics:
    def test_enum_and_string(self):
        assert validate_topic(Topic.FORUM) == "forumUpdate"
        assert validate_topic("userUpdate") == "userUpdate"

    def test_unknown_topic(self):
        with pytest.raises(ValueError, match="Unknown update topic"):
            validate_topic("blockUpdate")


class TestLocalDelivery:
    @pytest.mark.asyncio
    async def test_publish_returns_before_delivery(self):
        manager = _manager()
        bus = UpdateEventBus(manager)
        bus.publish(Topic.FORUM, _forum_payload())

        assert bus.pending == 1
        manager.broadcast.assert_not_awaited()

        await bus.drain()
        assert bus.pending == 0
        topic, data = manager.broadcast.await_args.args
        assert topic == "forumUpdate"
        assert data["type"] == "updated"
        assert data["forum"]["id"] == 3
        assert data["forum"]["created_at"].startswith("2024-01-01T00:00:00")

    @pytest.mark.asyncio
    async def test_publish_to_user(self):
        manager = _manager()
        bus = UpdateEventBus(manager)
        bus.publish_to_user("alice", "notificationUpdate", {"type": "read"})
        await bus.drain()
        manager.send_to_user.assert_awaited_once_with("alice", "notificationUpdate", {"type": "read"})
        manager.broadcast.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_topic_rejected_synchronously(self):
        bus = UpdateEventBus(_manager())
        with pytest.raises(ValueError):
            bus.publish("blockUpdate", {})
        assert bus.pending == 0

    @pytest.mark.asyncio
    async def test_delivery_error_is_contained(self):
        manager = _manager()
        manager.broadcast.side_effect = RuntimeError("boom")
        bus = UpdateEventBus(manager)
        bus.publish("questionUpdate", {})
        bus.publish("questionUpdate", {})
        await bus.drain()
        assert manager.broadcast.await_count == 2

    @pytest.mark.asyncio
    async def test_drain_with_nothing_pending(self):
        await UpdateEventBus(_manager()).drain()


class TestRedisRelay:
    @pytest.mark.asyncio
    async def test_broadcast_channel(self):
        manager = _manager()
        redis = MagicMock()
        redis.publish = AsyncMock()
        bus = UpdateEventBus(manager, redis=redis)

        bus.publish(Topic.FORUM, _forum_payload())
        await bus.drain()

        channel, message = redis.publish.await_args.args
        assert channel == "pubsub:forumUpdate"
        assert json.loads(message)["forum"]["name"] == "python"
        manager.broadcast.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_user_channel_wraps_topic(self):
        redis = MagicMock()
        redis.publish = AsyncMock()
        bus = UpdateEventBus(_manager(), redis=redis)

        bus.publish_to_user("alice", Topic.NOTIFICATION, {"type": "read"})
        await bus.drain()

        channel, message = redis.publish.await_args.args
        assert channel == "ws:user:alice"
        assert json.loads(message) == {"topic": "notificationUpdate", "data": {"type": "read"}}
