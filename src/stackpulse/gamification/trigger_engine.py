"""Reward engine: records qualifying activity and awards threshold badges."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.db.models import User
from stackpulse.events.bus import UpdateEventBus
from stackpulse.events.publish import publish_user
from stackpulse.gamification.badge_service import (
    REWARD_TABLE,
    RewardRule,
    award_badge,
    award_banner,
    bump_user_version,
)
from stackpulse.gamification.streak_service import get_streak, record_activity
from stackpulse.notifications.service import notify
from stackpulse.qa.service import count_questions_asked, count_votes_cast

logger = logging.getLogger(__name__)


class RewardEngine:
    """Evaluates streak and badge triggers after a qualifying activity.

    Runs after the triggering mutation has committed. Every write here commits on
    its own; a failure is logged and rolled back without touching the activity that
    triggered it.
    """

    def __init__(self, db: AsyncSession, bus: UpdateEventBus, rules: tuple[RewardRule, ...] = REWARD_TABLE) -> None:
        self.db = db
        self.bus = bus
        self.rules = rules

    async def _user_exists(self, username: str) -> bool:
        result = await self.db.execute(select(User.id).where(User.username == username))
        return result.scalar_one_or_none() is not None

    async def evaluate(
        self,
        username: str,
        activity: str | None = None,
        when: datetime | None = None,
    ) -> list[str]:
        """Record ``activity`` (if given) and award every badge whose threshold is met.

        Returns list of badge keys awarded (may be empty).
        """
        if not await self._user_exists(username):
            logger.warning("Reward evaluation skipped, unknown user %s", username)
            return []

        changed = False
        if activity is not None:
            changed = await self._record(username, activity, when or datetime.now(timezone.utc))

        awarded: list[str] = []
        try:
            metrics = await self.load_metrics(username)
        except Exception:
            await self.db.rollback()
            logger.exception("Failed to load reward metrics for %s", username)
            metrics = {}

        for rule in self.rules:
            if metrics.get(rule.metric, 0) < rule.threshold:
                continue
            if await self._grant(username, rule):
                awarded.append(rule.key)

        if changed and not awarded:
            await self._publish_user(username)
        return awarded

    async def load_metrics(self, username: str) -> dict[str, int]:
        return {
            "questions": await count_questions_asked(self.db, username),
            "votes": await count_votes_cast(self.db, username),
            "streak": len(await get_streak(self.db, username)),
        }

    async def _record(self, username: str, activity: str, when: datetime) -> bool:
        try:
            await record_activity(self.db, username, activity, when)
            await bump_user_version(self.db, username)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception("Failed to record %s activity for %s", activity, username)
            return False
        return True

    async def _grant(self, username: str, rule: RewardRule) -> bool:
        """Award one badge, its banner and the badge notification."""
        try:
            if not await award_badge(self.db, username, rule.badge):
                return False
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception("Failed to award badge %s to %s", rule.key, username)
            return False

        logger.info("Badge %s awarded to %s", rule.key, username)

        try:
            if await award_banner(self.db, username, rule.banner):
                await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception("Failed to award banner %s to %s", rule.banner, username)

        await notify(
            self.db,
            self.bus,
            username,
            title=f"New Badge Earned: {rule.title}",
            text=f"You earned the {rule.title} badge and unlocked the {rule.banner} banner.",
            metadata={"badge": rule.badge, "banner": rule.banner},
        )
        await self._publish_user(username)
        return True

    async def _publish_user(self, username: str) -> None:
        try:
            await publish_user(self.db, self.bus, username)
        except Exception:
            logger.exception("Failed to publish user update for %s", username)


async def run_rewards(
    db: AsyncSession,
    bus: UpdateEventBus,
    username: str,
    activity: str | None = None,
    when: datetime | None = None,
) -> list[str]:
    """Side-effect boundary for request handlers: never raises."""
    try:
        return await RewardEngine(db, bus).evaluate(username, activity, when)
    except Exception:
        await db.rollback()
        logger.exception("Reward evaluation failed for %s", username)
        return []
