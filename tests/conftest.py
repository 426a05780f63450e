"""Shared test fixtures."""

from __future__ import annotations

import os

# Must be set before the application module builds its settings
os.environ.setdefault("STACKPULSE_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STACKPULSE_EVENT_RELAY", "local")
os.environ.setdefault("STACKPULSE_LOG_FORMAT", "console")

from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.config import get_settings
from stackpulse.database import close_db, create_schema, get_session, init_db
from stackpulse.events.bus import UpdateEventBus
from stackpulse.main import create_app
from stackpulse.ws.manager import ConnectionManager


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """A fresh in-memory schema per test. Disposing the engine drops the database."""
    get_settings.cache_clear()
    await init_db(get_settings().database_url)
    await create_schema()
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for service-level tests."""
    async for session in get_session():
        yield session
        break


@pytest_asyncio.fixture
async def app(database: None) -> AsyncGenerator[FastAPI, None]:
    application = create_app()
    yield application
    await application.state.event_bus.drain()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app without a network."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def bus(app: FastAPI) -> UpdateEventBus:
    return app.state.event_bus


@pytest.fixture
def manager(app: FastAPI) -> ConnectionManager:
    return app.state.connection_manager


class RecordingSocket:
    """Stands in for a WebSocket: records every text frame sent to it."""

    def __init__(self) -> None:
        self.accept = AsyncMock()
        self.send_text = AsyncMock(side_effect=self._record)
        self.frames: list[dict[str, Any]] = []

    async def _record(self, text: str) -> None:
        import json

        self.frames.append(json.loads(text))

    def topics(self) -> list[str]:
        return [f["topic"] for f in self.frames]

    def of(self, topic: str) -> list[dict[str, Any]]:
        return [f["data"] for f in self.frames if f["topic"] == topic]


@pytest.fixture
def recording_socket() -> type[RecordingSocket]:
    return RecordingSocket


async def listen(manager: ConnectionManager, username: str, *topics: str) -> RecordingSocket:
    """Register a recording socket for ``username`` subscribed to ``topics``."""
    socket = RecordingSocket()
    conn_id = f"{username}-{len(manager._connections)}"
    await manager.connect(socket, conn_id, username)  # type: ignore[arg-type]
    for topic in topics:
        await manager.subscribe(conn_id, topic)
    return socket


@pytest.fixture
def subscribe_socket():
    return listen


@pytest.fixture
def watch(app: FastAPI):
    """Listen on the app's manager once every earlier delivery has landed."""

    async def _watch(username: str, *topics: str) -> RecordingSocket:
        await app.state.event_bus.drain()
        return await listen(app.state.connection_manager, username, *topics)

    return _watch


async def create_user(client: AsyncClient, username: str, **extra: Any) -> dict:
    response = await client.post("/api/v1/users", json={"username": username, **extra})
    assert response.status_code == 201, response.text
    return response.json()


async def create_forum(client: AsyncClient, name: str, created_by: str, forum_type: str = "public") -> dict:
    response = await client.post(
        "/api/v1/forums",
        json={"name": name, "created_by": created_by, "type": forum_type},
    )
    assert response.status_code == 201, response.text
    return response.json()


async def ask(client: AsyncClient, asked_by: str, title: str = "How do I?", **extra: Any) -> dict:
    response = await client.post(
        "/api/v1/questions",
        json={"title": title, "text": "Some details", "asked_by": asked_by, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def api():
    """Request helpers shared by the API tests."""

    class _Api:
        create_user = staticmethod(create_user)
        create_forum = staticmethod(create_forum)
        ask = staticmethod(ask)

    return _Api
