"""Reward engine: threshold awards, idempotency and failure isolation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.db.models import Notification, User
from stackpulse.events.bus import UpdateEventBus
from stackpulse.gamification.badge_service import (
    REWARD_TABLE,
    award_badge,
    get_badges,
    get_banners,
)
from stackpulse.gamification.streak_service import get_streak
from stackpulse.gamification.trigger_engine import RewardEngine, run_rewards
from stackpulse.qa.service import create_question, vote
from stackpulse.users.service import create_user
from stackpulse.ws.manager import ConnectionManager

RULES = {rule.key: rule for rule in REWARD_TABLE}
T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine_db(db_session: AsyncSession, subscribe_socket):
    """A committed user and a bus with one socket listening on user and notification updates."""
    await create_user(db_session, "alice")
    await create_user(db_session, "bob")
    await db_session.commit()

    manager = ConnectionManager()
    socket = await subscribe_socket(manager, "alice", "userUpdate", "notificationUpdate")
    bus = UpdateEventBus(manager)
    return db_session, bus, socket


async def _version(db: AsyncSession, username: str) -> int:
    result = await db.execute(
        select(User.version).where(User.username == username).execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestThresholds:
    @pytest.mark.asyncio
    async def test_first_post_awards_badge_banner_and_notification(self, engine_db):
        db, bus, socket = engine_db
        await create_question(db, "Title", "Text", "alice", ask_date_time=T0)
        await db.commit()

        awarded = await RewardEngine(db, bus).evaluate("alice", "question", T0)
        await bus.drain()

        assert awarded == ["first_post"]
        assert await get_badges(db, "alice") == [RULES["first_post"].badge]
        assert await get_banners(db, "alice") == [RULES["first_post"].banner]

        notifications = (await db.execute(select(Notification))).scalars().all()
        assert len(notifications) == 1
        assert notifications[0].target_user == "alice"
        assert notifications[0].kind == "browser"
        assert "First Post" in notifications[0].title

        assert "notificationUpdate" in socket.topics()
        user_payloads = socket.of("userUpdate")
        assert user_payloads[-1]["user"]["badges"] == [RULES["first_post"].badge]

    @pytest.mark.asyncio
    async def test_award_is_idempotent(self, engine_db):
        db, bus, _socket = engine_db
        await create_question(db, "Title", "Text", "alice", ask_date_time=T0)
        await db.commit()

        engine = RewardEngine(db, bus)
        assert await engine.evaluate("alice", "question", T0) == ["first_post"]
        assert await engine.evaluate("alice", "question", T0) == []
        assert await get_badges(db, "alice") == [RULES["first_post"].badge]

        count = (await db.execute(select(Notification))).scalars().all()
        assert len(count) == 1

    @pytest.mark.asyncio
    async def test_five_day_streak(self, engine_db):
        db, bus, _socket = engine_db
        engine = RewardEngine(db, bus)
        awarded: list[str] = []
        for day in range(5):
            awarded += await engine.evaluate("alice", "answer", T0 + timedelta(days=day))

        assert awarded == ["five_day_streak"]
        assert len(await get_streak(db, "alice")) == 5
        assert RULES["five_day_streak"].banner in await get_banners(db, "alice")

    @pytest.mark.asyncio
    async def test_five_votes(self, engine_db):
        db, bus, _socket = engine_db
        ids = []
        for i in range(5):
            question = await create_question(db, f"Q{i}", "Text", "bob", ask_date_time=T0)
            ids.append(question.id)
        await db.commit()

        awarded: list[str] = []
        for question_id in ids:
            await vote(db, question_id, "alice", "up")
            await db.commit()
            awarded += await RewardEngine(db, bus).evaluate("alice", "vote", T0)

        assert awarded == ["five_votes"]

    @pytest.mark.asyncio
    async def test_ten_posts_also_keeps_first_post(self, engine_db):
        db, bus, _socket = engine_db
        for i in range(10):
            await create_question(db, f"Q{i}", "Text", "alice", ask_date_time=T0)
        await db.commit()

        awarded = await RewardEngine(db, bus).evaluate("alice", "question", T0)
        assert awarded == ["first_post", "ten_posts"]

    @pytest.mark.asyncio
    async def test_unknown_user_is_skipped(self, engine_db):
        db, bus, _socket = engine_db
        assert await RewardEngine(db, bus).evaluate("nobody", "vote", T0) == []

    @pytest.mark.asyncio
    async def test_activity_without_award_still_publishes_user(self, engine_db):
        db, bus, socket = engine_db
        before = await _version(db, "alice")

        assert await RewardEngine(db, bus).evaluate("alice", "vote", T0) == []
        await bus.drain()

        assert await _version(db, "alice") == before + 1
        payload = socket.of("userUpdate")[-1]
        assert payload["type"] == "updated"
        assert payload["user"]["streak"] == ["2024-06-01"]


class TestDuplicateRace:
    @pytest.mark.asyncio
    async def test_concurrent_duplicate_is_skipped(self, engine_db):
        db, _bus, _socket = engine_db
        badge = RULES["first_post"].badge
        assert await award_badge(db, "alice", badge) is True
        await db.commit()

        # Both requests passed the ownership check; the unique constraint catches the second
        with patch("stackpulse.gamification.badge_service.has_badge", AsyncMock(return_value=False)):
            assert await award_badge(db, "alice", badge) is False

        assert await get_badges(db, "alice") == [badge]


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_banner_failure_keeps_badge_and_activity(self, engine_db):
        db, bus, _socket = engine_db
        await create_question(db, "Title", "Text", "alice", ask_date_time=T0)
        await db.commit()

        with patch(
            "stackpulse.gamification.trigger_engine.award_banner",
            AsyncMock(side_effect=RuntimeError("banner store down")),
        ):
            awarded = await RewardEngine(db, bus).evaluate("alice", "question", T0)

        assert awarded == ["first_post"]
        assert await get_badges(db, "alice") == [RULES["first_post"].badge]
        assert await get_banners(db, "alice") == []
        assert await get_streak(db, "alice") == [T0.date()]

    @pytest.mark.asyncio
    async def test_badge_failure_keeps_activity(self, engine_db):
        db, bus, _socket = engine_db
        await create_question(db, "Title", "Text", "alice", ask_date_time=T0)
        await db.commit()

        with patch(
            "stackpulse.gamification.trigger_engine.award_badge",
            AsyncMock(side_effect=RuntimeError("badge store down")),
        ):
            awarded = await RewardEngine(db, bus).evaluate("alice", "question", T0)

        assert awarded == []
        assert await get_badges(db, "alice") == []
        assert await get_streak(db, "alice") == [T0.date()]

    @pytest.mark.asyncio
    async def test_run_rewards_never_raises(self, engine_db):
        db, bus, _socket = engine_db
        with patch.object(RewardEngine, "evaluate", AsyncMock(side_effect=RuntimeError("boom"))):
            assert await run_rewards(db, bus, "alice", "vote", T0) == []
