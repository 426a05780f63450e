"""FastAPI application factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from stackpulse.config import get_settings
from stackpulse.database import close_db, create_schema, init_db
from stackpulse.events.bus import UpdateEventBus
from stackpulse.forums.router import router as forums_router
from stackpulse.gamification.router import router as challenges_router
from stackpulse.health.router import router as health_router
from stackpulse.middleware import setup_middleware
from stackpulse.notifications.router import router as notifications_router
from stackpulse.qa.router import router as qa_router
from stackpulse.redis_client import close_redis, init_redis
from stackpulse.users.router import router as users_router
from stackpulse.ws.bridge import PubSubBridge
from stackpulse.ws.manager import ConnectionManager
from stackpulse.ws.router import router as ws_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.create_schema_on_startup:
        await create_schema()

    bus: UpdateEventBus = app.state.event_bus
    bridge: PubSubBridge | None = None
    bridge_task: asyncio.Task[None] | None = None

    if settings.event_relay == "redis":
        redis = await init_redis(settings.redis_url)
        bus.redis = redis
        # Relay updates published by any worker to this worker's sockets
        bridge = PubSubBridge(redis, app.state.connection_manager)
        bridge_task = asyncio.create_task(bridge.start())

    logger.info("app_started", event_relay=settings.event_relay, version=settings.app_version)

    yield

    await bus.drain()

    if bridge is not None and bridge_task is not None:
        await bridge.stop()
        bridge_task.cancel()
        try:
            await bridge_task
        except asyncio.CancelledError:
            pass
        bus.redis = None
        await close_redis()

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="StackPulse API",
        description="Forum and Q&A backend with real-time update distribution",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    manager = ConnectionManager(max_connections_per_user=settings.ws_max_connections_per_user)
    app.state.connection_manager = manager
    app.state.event_bus = UpdateEventBus(manager)

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(users_router)
    app.include_router(forums_router)
    app.include_router(qa_router)
    app.include_router(notifications_router)
    app.include_router(challenges_router)
    app.include_router(ws_router)

    return app


app = create_app()
