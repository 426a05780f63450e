"""WebSocket connection manager.

Tracks all active WebSocket connections and their topic subscriptions.
Handles fan-out of update payloads to subscribed clients.
"""

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import structlog
from fastapi import WebSocket

from stackpulse.events.topics import VALID_TOPICS

logger = structlog.get_logger()


@dataclass
class ClientConnection:
    """Represents a single WebSocket client."""

    websocket: WebSocket
    username: str
    subscriptions: set[str] = field(default_factory=set)
    connected_at: float = field(default_factory=time.time)
    messages_sent: int = 0


class ConnectionManager:
    """Manages all active WebSocket connections.

    Safe for asyncio via the single-threaded event loop. A failed send drops the
    connection; nothing is retried or queued.
    """

    def __init__(self, max_connections_per_user: int = 5) -> None:
        self.max_connections_per_user = max_connections_per_user
        self._connections: dict[str, ClientConnection] = {}  # conn_id -> client
        self._topics: dict[str, set[str]] = defaultdict(set)  # topic -> {conn_ids}
        self._user_connections: dict[str, set[str]] = defaultdict(set)  # username -> {conn_ids}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def has_capacity(self, username: str) -> bool:
        return len(self._user_connections.get(username, ())) < self.max_connections_per_user

    async def connect(self, websocket: WebSocket, conn_id: str, username: str) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        self._connections[conn_id] = ClientConnection(websocket=websocket, username=username)
        self._user_connections[username].add(conn_id)
        logger.info("ws_connected", conn_id=conn_id, username=username)

    async def disconnect(self, conn_id: str) -> None:
        """Remove a WebSocket connection and its subscriptions."""
        client = self._connections.pop(conn_id, None)
        if client is None:
            return

        for topic in client.subscriptions:
            self._topics[topic].discard(conn_id)

        self._user_connections[client.username].discard(conn_id)
        if not self._user_connections[client.username]:
            del self._user_connections[client.username]

        logger.info("ws_disconnected", conn_id=conn_id, username=client.username)

    async def subscribe(self, conn_id: str, topic: str) -> bool:
        """Subscribe a connection to a topic. Returns False if invalid."""
        client = self._connections.get(conn_id)
        if client is None:
            return False

        if topic not in VALID_TOPICS:
            return False

        client.subscriptions.add(topic)
        self._topics[topic].add(conn_id)
        logger.debug("ws_subscribed", conn_id=conn_id, topic=topic)
        return True

    async def unsubscribe(self, conn_id: str, topic: str) -> bool:
        """Unsubscribe a connection from a topic."""
        client = self._connections.get(conn_id)
        if client is None:
            return False

        client.subscriptions.discard(topic)
        self._topics[topic].discard(conn_id)
        return True

    async def broadcast(self, topic: str, data: dict[str, Any]) -> int:
        """Send a payload to all clients subscribed to a topic.

        Returns the number of clients that received the message.
        """
        return await self._deliver(list(self._topics.get(topic, ())), topic, data)

    async def send_to_user(self, username: str, topic: str, data: dict[str, Any]) -> int:
        """Send a payload to every connection of one user subscribed to ``topic``."""
        return await self._deliver(list(self._user_connections.get(username, ())), topic, data)

    async def _deliver(self, conn_ids: list[str], topic: str, data: dict[str, Any]) -> int:
        if not conn_ids:
            return 0

        message = json.dumps({"topic": topic, "data": data})
        sent = 0
        failed: list[str] = []

        for conn_id in conn_ids:
            client = self._connections.get(conn_id)
            if client is None:
                failed.append(conn_id)
                continue
            if topic not in client.subscriptions:
                continue
            try:
                await client.websocket.send_text(message)
            except Exception as exc:
                logger.warning("ws_send_failed", conn_id=conn_id, topic=topic, error=str(exc))
                failed.append(conn_id)
                continue
            client.messages_sent += 1
            sent += 1

        for conn_id in failed:
            await self.disconnect(conn_id)

        return sent

    def get_stats(self) -> dict[str, Any]:
        """Get connection statistics."""
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._user_connections),
            "topics": {topic: len(conns) for topic, conns in self._topics.items() if conns},
        }
