"""Redis pub/sub bridge message routing."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from stackpulse.ws.bridge import CHANNEL_MAP, PubSubBridge
from stackpulse.ws.manager import ConnectionManager


def _manager() -> MagicMock:
    manager = MagicMock(spec=ConnectionManager)
    manager.broadcast = AsyncMock(return_value=2)
    manager.send_to_user = AsyncMock(return_value=1)
    return manager


def test_channel_map_covers_every_topic():
    assert CHANNEL_MAP["pubsub:questionUpdate"] == "questionUpdate"
    assert CHANNEL_MAP["pubsub:challengeCompleted"] == "challengeCompleted"
    assert len(CHANNEL_MAP) == 7


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_broadcast_channel(self):
        manager = _manager()
        bridge = PubSubBridge(MagicMock(), manager)
        sent = await bridge.handle_message({
            "type": "message",
            "channel": b"pubsub:forumUpdate",
            "data": json.dumps({"forum": {"id": 1}, "type": "updated"}).encode(),
        })
        assert sent == 2
        manager.broadcast.assert_awaited_once_with("forumUpdate", {"forum": {"id": 1}, "type": "updated"})

    @pytest.mark.asyncio
    async def test_user_channel(self):
        manager = _manager()
        bridge = PubSubBridge(MagicMock(), manager)
        sent = await bridge.handle_message({
            "type": "pmessage",
            "channel": "ws:user:alice",
            "data": json.dumps({"topic": "notificationUpdate", "data": {"type": "read"}}),
        })
        assert sent == 1
        manager.send_to_user.assert_awaited_once_with("alice", "notificationUpdate", {"type": "read"})

    @pytest.mark.asyncio
    async def test_user_channel_with_unknown_topic(self):
        manager = _manager()
        bridge = PubSubBridge(MagicMock(), manager)
        sent = await bridge.handle_message({
            "type": "pmessage",
            "channel": "ws:user:alice",
            "data": json.dumps({"topic": "blocks", "data": {}}),
        })
        assert sent == 0
        manager.send_to_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        manager = _manager()
        bridge = PubSubBridge(MagicMock(), manager)
        assert await bridge.handle_message({"type": "message", "channel": "pubsub:userUpdate", "data": "{"}) == 0
        manager.broadcast.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_channel(self):
        manager = _manager()
        bridge = PubSubBridge(MagicMock(), manager)
        assert await bridge.handle_message({"type": "message", "channel": "other", "data": "{}"}) == 0


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_relays_until_stopped(self):
        manager = _manager()
        pubsub = MagicMock()
        pubsub.subscribe = AsyncMock()
        pubsub.psubscribe = AsyncMock()
        pubsub.unsubscribe = AsyncMock()
        pubsub.punsubscribe = AsyncMock()
        pubsub.aclose = AsyncMock()
        redis = MagicMock()
        redis.pubsub.return_value = pubsub

        bridge = PubSubBridge(redis, manager)
        relayed = asyncio.Event()

        async def get_message(**_kwargs):
            if relayed.is_set():
                await bridge.stop()
                return None
            relayed.set()
            return {"type": "message", "channel": "pubsub:userUpdate", "data": "{}"}

        pubsub.get_message = get_message
        await asyncio.wait_for(bridge.start(), timeout=1)

        pubsub.psubscribe.assert_awaited_once_with("ws:user:*")
        manager.broadcast.assert_awaited_once_with("userUpdate", {})
        pubsub.aclose.assert_awaited_once()
