"""Bridges Redis pub/sub to WebSocket clients.

Every worker runs one bridge. Updates published by any worker on
``pubsub:<topic>`` or ``ws:user:<username>`` are fanned out to the sockets held
by this worker's :class:`ConnectionManager`.
"""

import asyncio
import json

import redis.asyncio as aioredis
import structlog

from stackpulse.events.bus import BROADCAST_PREFIX, USER_PREFIX
from stackpulse.events.topics import VALID_TOPICS
from stackpulse.ws.manager import ConnectionManager

logger = structlog.get_logger()

# Redis pub/sub channel -> WebSocket topic
CHANNEL_MAP: dict[str, str] = {f"{BROADCAST_PREFIX}{topic}": topic for topic in VALID_TOPICS}


class PubSubBridge:
    """Subscribes to Redis pub/sub and pushes messages to WebSocket clients."""

    def __init__(self, redis_client: aioredis.Redis, manager: ConnectionManager) -> None:
        self.redis = redis_client
        self.manager = manager
        self._running = False

    async def start(self) -> None:
        """Start listening to Redis pub/sub channels."""
        self._running = True
        pubsub = self.redis.pubsub()

        await pubsub.subscribe(*CHANNEL_MAP.keys())
        await pubsub.psubscribe(f"{USER_PREFIX}*")

        logger.info(
            "pubsub_bridge_started",
            channels=sorted(CHANNEL_MAP.keys()),
            patterns=[f"{USER_PREFIX}*"],
        )

        try:
            while self._running:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message is None:
                    continue
                await self.handle_message(message)
        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.unsubscribe()
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("pubsub_bridge_stopped")

    async def handle_message(self, message: dict) -> int:
        """Relay one pub/sub message. Returns the number of sockets reached."""
        msg_type = message.get("type", "")
        redis_channel = message.get("channel", "")
        if isinstance(redis_channel, bytes):
            redis_channel = redis_channel.decode()

        try:
            data = message.get("data", b"")
            if isinstance(data, bytes):
                data = data.decode()
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
            logger.warning("pubsub_invalid_message", channel=redis_channel)
            return 0

        # Per-user messages (pattern match on ws:user:*)
        if msg_type == "pmessage" and redis_channel.startswith(USER_PREFIX):
            username = redis_channel[len(USER_PREFIX):]
            topic = payload.get("topic")
            if not username or topic not in VALID_TOPICS:
                logger.warning("pubsub_invalid_user_message", channel=redis_channel)
                return 0
            sent = await self.manager.send_to_user(username, topic, payload.get("data", {}))
            if sent > 0:
                logger.debug("user_update_sent", username=username, topic=topic, recipients=sent)
            return sent

        # Broadcast messages (exact channel match)
        topic = CHANNEL_MAP.get(redis_channel)
        if topic is None:
            return 0

        sent = await self.manager.broadcast(topic, payload)
        if sent > 0:
            logger.debug("pubsub_broadcast", topic=topic, recipients=sent)
        return sent

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self._running = False
