"""Update event bus.

Services call :meth:`UpdateEventBus.publish` after their mutation commits. Delivery is
fire-and-forget: the call returns immediately and a background task fans the payload
out, either to the in-process :class:`ConnectionManager` or through Redis pub/sub so
that the bridge on every worker relays it to its own sockets.
"""

import asyncio
import json
from typing import Any

import redis.asyncio as aioredis
import structlog
from pydantic import BaseModel

from stackpulse.events.topics import Topic, validate_topic
from stackpulse.ws.manager import ConnectionManager

logger = structlog.get_logger()

BROADCAST_PREFIX = "pubsub:"
USER_PREFIX = "ws:user:"


def _to_wire(payload: BaseModel | dict[str, Any]) -> dict[str, Any]:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    return payload


class UpdateEventBus:
    """Broadcasts typed update payloads to connected clients."""

    def __init__(self, manager: ConnectionManager, redis: aioredis.Redis | None = None) -> None:
        self.manager = manager
        self.redis = redis
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def publish(self, topic: Topic | str, payload: BaseModel | dict[str, Any]) -> None:
        """Schedule a broadcast of ``payload`` to every client subscribed to ``topic``."""
        name = validate_topic(topic)
        self._schedule(self._deliver(name, _to_wire(payload)))

    def publish_to_user(self, username: str, topic: Topic | str, payload: BaseModel | dict[str, Any]) -> None:
        """Schedule delivery of ``payload`` to one user's connections only."""
        name = validate_topic(topic)
        self._schedule(self._deliver(name, _to_wire(payload), username=username))

    async def drain(self) -> None:
        """Wait for all in-flight deliveries to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, coro: Any) -> None:  # noqa: ANN401
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, topic: str, data: dict[str, Any], username: str | None = None) -> None:
        try:
            if self.redis is not None:
                if username is None:
                    channel = f"{BROADCAST_PREFIX}{topic}"
                    message = json.dumps(data)
                else:
                    channel = f"{USER_PREFIX}{username}"
                    message = json.dumps({"topic": topic, "data": data})
                await self.redis.publish(channel, message)
                logger.debug("event_relayed", topic=topic, channel=channel)
                return

            if username is None:
                sent = await self.manager.broadcast(topic, data)
            else:
                sent = await self.manager.send_to_user(username, topic, data)
            logger.debug("event_published", topic=topic, username=username, recipients=sent)
        except Exception:
            logger.exception("event_delivery_failed", topic=topic, username=username)
