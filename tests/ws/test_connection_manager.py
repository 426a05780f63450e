"""Connection manager: subscriptions, fan-out and dropped sockets."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from stackpulse.ws.manager import ConnectionManager


def _socket() -> MagicMock:
    ws = MagicMock()
    ws.accept = AsyncMock()
    ws.send_text = AsyncMock()
    return ws


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_connect_accepts(self):
        manager = ConnectionManager()
        ws = _socket()
        await manager.connect(ws, "c1", "alice")
        ws.accept.assert_awaited_once()
        assert manager.connection_count == 1

    @pytest.mark.asyncio
    async def test_subscribe_valid_topic(self):
        manager = ConnectionManager()
        await manager.connect(_socket(), "c1", "alice")
        assert await manager.subscribe("c1", "questionUpdate") is True
        assert manager.get_stats()["topics"] == {"questionUpdate": 1}

    @pytest.mark.asyncio
    async def test_subscribe_invalid_topic(self):
        manager = ConnectionManager()
        await manager.connect(_socket(), "c1", "alice")
        assert await manager.subscribe("c1", "blocks") is False

    @pytest.mark.asyncio
    async def test_subscribe_unknown_connection(self):
        manager = ConnectionManager()
        assert await manager.subscribe("missing", "questionUpdate") is False

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self):
        manager = ConnectionManager()
        ws = _socket()
        await manager.connect(ws, "c1", "alice")
        await manager.subscribe("c1", "forumUpdate")
        await manager.unsubscribe("c1", "forumUpdate")
        assert await manager.broadcast("forumUpdate", {"x": 1}) == 0
        ws.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_capacity_per_user(self):
        manager = ConnectionManager(max_connections_per_user=2)
        await manager.connect(_socket(), "c1", "alice")
        assert manager.has_capacity("alice")
        await manager.connect(_socket(), "c2", "alice")
        assert not manager.has_capacity("alice")
        assert manager.has_capacity("bob")

    @pytest.mark.asyncio
    async def test_disconnect_cleans_up(self):
        manager = ConnectionManager()
        await manager.connect(_socket(), "c1", "alice")
        await manager.subscribe("c1", "userUpdate")
        await manager.disconnect("c1")
        await manager.disconnect("c1")
        assert manager.get_stats() == {"total_connections": 0, "unique_users": 0, "topics": {}}


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_only_subscribers_receive(self):
        manager = ConnectionManager()
        subscribed, other = _socket(), _socket()
        await manager.connect(subscribed, "c1", "alice")
        await manager.connect(other, "c2", "bob")
        await manager.subscribe("c1", "questionUpdate")
        await manager.subscribe("c2", "forumUpdate")

        assert await manager.broadcast("questionUpdate", {"id": 1}) == 1
        frame = json.loads(subscribed.send_text.await_args.args[0])
        assert frame == {"topic": "questionUpdate", "data": {"id": 1}}
        other.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self):
        manager = ConnectionManager()
        good, broken = _socket(), _socket()
        broken.send_text.side_effect = RuntimeError("socket closed")
        await manager.connect(good, "c1", "alice")
        await manager.connect(broken, "c2", "bob")
        for conn_id in ("c1", "c2"):
            await manager.subscribe(conn_id, "userUpdate")

        assert await manager.broadcast("userUpdate", {}) == 1
        assert manager.connection_count == 1
        # No retry on the next broadcast
        assert await manager.broadcast("userUpdate", {}) == 1
        assert broken.send_text.await_count == 1

    @pytest.mark.asyncio
    async def test_send_to_user_targets_subscribed_connections(self):
        manager = ConnectionManager()
        tab1, tab2, stranger = _socket(), _socket(), _socket()
        await manager.connect(tab1, "c1", "alice")
        await manager.connect(tab2, "c2", "alice")
        await manager.connect(stranger, "c3", "bob")
        await manager.subscribe("c1", "notificationUpdate")
        await manager.subscribe("c3", "notificationUpdate")

        assert await manager.send_to_user("alice", "notificationUpdate", {"id": 5}) == 1
        tab1.send_text.assert_awaited_once()
        tab2.send_text.assert_not_awaited()
        stranger.send_text.assert_not_awaited()
