"""Live update subscriptions over the server's WebSocket.

The socket is passed in; nothing here opens or owns a global connection.
Subscriptions are scoped: ``async with live.subscribe(topic, handler)``
registers the handler and sends ``subscribe`` on enter, and removes it and
sends ``unsubscribe`` on exit.

A handler that raises is detached from that topic and logged. The other
handlers, and the listen loop, keep running.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import aiohttp

from stackpulse.events.topics import validate_topic

logger = logging.getLogger(__name__)

Handler = Callable[[str, dict[str, Any]], None]


class LiveUpdates:
    """Dispatches ``{"topic", "data"}`` frames from one socket to scoped handlers."""

    def __init__(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        self.ws = ws
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._server_topics: set[str] = set()  # topics the server was asked to send

    @asynccontextmanager
    async def subscribe(self, topic: str, handler: Handler) -> AsyncIterator[None]:
        topic = validate_topic(topic)
        self._handlers[topic].append(handler)
        if topic not in self._server_topics:
            self._server_topics.add(topic)
            await self.ws.send_json({"action": "subscribe", "topic": topic})
        try:
            yield
        finally:
            self._detach(topic, handler)
            if topic not in self._handlers and topic in self._server_topics:
                self._server_topics.discard(topic)
                if not self.ws.closed:
                    await self.ws.send_json({"action": "unsubscribe", "topic": topic})

    @asynccontextmanager
    async def attach(self, store: Any) -> AsyncIterator[None]:
        """Subscribe ``store.handle`` to every topic the store folds in."""
        async with AsyncExitStack() as stack:
            for topic in store.topics:
                await stack.enter_async_context(self.subscribe(str(topic.value), store.handle))
            yield

    def subscribed_topics(self) -> set[str]:
        """Topics with at least one live handler."""
        return set(self._handlers)

    def _detach(self, topic: str, handler: Handler) -> None:
        handlers = self._handlers.get(topic)
        if handlers is None or handler not in handlers:
            return
        handlers.remove(handler)
        if not handlers:
            del self._handlers[topic]

    def dispatch(self, message: dict[str, Any]) -> int:
        """Hand one server frame to the handlers of its topic. Returns the count that ran cleanly.

        Frames carrying ``type`` are control replies (acks, pong, errors) and reach no handler.
        """
        kind = message.get("type")
        if kind is not None:
            if kind == "error":
                logger.warning("Server reported error: %s", message.get("message"))
            return 0
        topic = message.get("topic")
        data = message.get("data")
        if topic is None or data is None:
            logger.warning("Ignoring frame without topic or data")
            return 0

        delivered = 0
        for handler in list(self._handlers.get(topic, ())):
            try:
                handler(topic, data)
            except Exception:
                logger.exception("Handler for %s failed, detaching it", topic)
                self._detach(topic, handler)
            else:
                delivered += 1
        return delivered

    async def ping(self) -> None:
        await self.ws.send_json({"action": "ping"})

    async def listen(self) -> None:
        """Read frames until the socket closes."""
        async for msg in self.ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    payload = json.loads(msg.data)
                except json.JSONDecodeError:
                    logger.warning("Ignoring malformed frame")
                    continue
                if isinstance(payload, dict):
                    self.dispatch(payload)
            elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                break
        logger.info("Live updates socket closed")


@asynccontextmanager
async def connect(url: str, username: str, session: aiohttp.ClientSession) -> AsyncIterator[LiveUpdates]:
    """Open the server socket for ``username`` on an existing session."""
    async with session.ws_connect(url, params={"username": username}, heartbeat=30) as ws:
        yield LiveUpdates(ws)
