"""Notification endpoints and their delivery rules."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import AsyncClient


@pytest_asyncio.fixture
async def users(client: AsyncClient, api) -> None:
    for name in ("alice", "bob"):
        await api.create_user(client, name)


async def _notify(client: AsyncClient, target: str, title: str = "Hello", kind: str = "browser") -> dict:
    response = await client.post(
        "/api/v1/notifications", json={"target_user": target, "title": title, "kind": kind}
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestNotifications:
    @pytest.mark.asyncio
    async def test_create_broadcasts(self, client, users, bus, watch):
        socket = await watch("bob", "notificationUpdate")
        created = await _notify(client, "alice")
        await bus.drain()

        assert created["read"] is False
        assert created["version"] == 1
        [payload] = socket.of("notificationUpdate")
        assert payload == {"notification": created, "type": "created"}

    @pytest.mark.asyncio
    async def test_unknown_target(self, client):
        response = await client.post("/api/v1/notifications", json={"target_user": "ghost", "title": "x"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_kind(self, client, users):
        response = await client.post(
            "/api/v1/notifications", json={"target_user": "alice", "title": "x", "kind": "sms"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_newest_first_and_unread_filter(self, client, users):
        first = await _notify(client, "alice", "first")
        second = await _notify(client, "alice", "second")
        await _notify(client, "bob", "other")
        await client.patch(f"/api/v1/notifications/{first['id']}/read")

        listed = (await client.get("/api/v1/notifications/alice")).json()
        assert [n["title"] for n in listed] == ["second", "first"]

        unread = (await client.get("/api/v1/notifications/alice", params={"unread_only": True})).json()
        assert [n["id"] for n in unread] == [second["id"]]

    @pytest.mark.asyncio
    async def test_read_goes_to_owner_only(self, client, users, bus, watch):
        created = await _notify(client, "alice")
        owner = await watch("alice", "notificationUpdate")
        other = await watch("bob", "notificationUpdate")

        response = await client.patch(f"/api/v1/notifications/{created['id']}/read")
        await bus.drain()

        assert response.json()["read"] is True
        assert response.json()["version"] == 2
        [payload] = owner.of("notificationUpdate")
        assert payload["type"] == "read"
        assert payload["notification"]["id"] == created["id"]
        assert other.frames == []

    @pytest.mark.asyncio
    async def test_read_twice_keeps_version(self, client, users):
        created = await _notify(client, "alice")
        await client.patch(f"/api/v1/notifications/{created['id']}/read")
        again = await client.patch(f"/api/v1/notifications/{created['id']}/read")
        assert again.json()["version"] == 2

    @pytest.mark.asyncio
    async def test_read_missing(self, client):
        response = await client.patch("/api/v1/notifications/404/read")
        assert response.status_code == 404
