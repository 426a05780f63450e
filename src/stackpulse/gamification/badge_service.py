"""Badge and banner awards with duplicate prevention."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.db.models import User, UserBadge, UserBanner
from stackpulse.errors import DuplicateRewardError, EntityNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RewardRule:
    """A badge with its unlock threshold and the banner granted alongside it."""

    key: str
    metric: str
    threshold: int
    badge: str
    banner: str
    title: str


REWARD_TABLE: tuple[RewardRule, ...] = (
    RewardRule("first_post", "questions", 1, "/badge_images/First_Post_Badge.png", "lightblue", "First Post"),
    RewardRule("five_day_streak", "streak", 5, "/badge_images/Five_Day_Streak_Badge.png", "pink", "Five Day Streak"),
    RewardRule("five_votes", "votes", 5, "/badge_images/Five_Votes_Badge.png", "lightcoral", "Five Votes"),
    RewardRule("ten_posts", "questions", 10, "/badge_images/Ten_Posts_Badge.png", "lightgreen", "Ten Posts"),
)


async def get_badges(db: AsyncSession, username: str) -> list[str]:
    result = await db.execute(
        select(UserBadge.badge).where(UserBadge.username == username).order_by(UserBadge.id)
    )
    return list(result.scalars())


async def get_banners(db: AsyncSession, username: str) -> list[str]:
    result = await db.execute(
        select(UserBanner.banner).where(UserBanner.username == username).order_by(UserBanner.id)
    )
    return list(result.scalars())


async def has_badge(db: AsyncSession, username: str, badge: str) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(UserBadge.id).where(UserBadge.username == username, UserBadge.badge == badge)
    )
    return result.scalar_one_or_none() is not None


async def has_banner(db: AsyncSession, username: str, banner: str) -> bool:
    result = await db.execute(
        select(UserBanner.id).where(UserBanner.username == username, UserBanner.banner == banner)
    )
    return result.scalar_one_or_none() is not None


async def bump_user_version(db: AsyncSession, username: str) -> None:
    await db.execute(update(User).where(User.username == username).values(version=User.version + 1))


async def award_badge(db: AsyncSession, username: str, badge: str) -> bool:
    """Award a badge to a user.

    Returns True if awarded, False if already earned. A concurrent award of the same
    badge is caught by the unique constraint, rolled back and reported as False.
    Flushes but does not commit.
    """
    if await has_badge(db, username, badge):
        return False

    db.add(UserBadge(username=username, badge=badge, earned_at=datetime.now(timezone.utc)))
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        return False  # Race condition: badge already awarded

    await bump_user_version(db, username)
    return True


async def award_banner(db: AsyncSession, username: str, banner: str) -> bool:
    """Unlock a banner for a user. Same semantics as :func:`award_badge`."""
    if await has_banner(db, username, banner):
        return False

    db.add(UserBanner(username=username, banner=banner, earned_at=datetime.now(timezone.utc)))
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        return False

    await bump_user_version(db, username)
    return True


async def _require_user(db: AsyncSession, username: str) -> None:
    result = await db.execute(select(User.id).where(User.username == username))
    if result.scalar_one_or_none() is None:
        raise EntityNotFoundError(f"User not found: {username}")


async def add_badges(db: AsyncSession, username: str, badges: list[str]) -> list[str]:
    """Explicitly add badges. Raises DuplicateRewardError if any is already owned."""
    await _require_user(db, username)
    owned = set(await get_badges(db, username))
    duplicates = sorted(owned.intersection(badges))
    if duplicates:
        raise DuplicateRewardError(f"Badge already owned: {', '.join(duplicates)}")

    now = datetime.now(timezone.utc)
    for badge in dict.fromkeys(badges):
        db.add(UserBadge(username=username, badge=badge, earned_at=now))
    await db.flush()
    await bump_user_version(db, username)
    return await get_badges(db, username)


async def add_banners(db: AsyncSession, username: str, banners: list[str]) -> list[str]:
    """Explicitly add banners. Raises DuplicateRewardError if any is already owned."""
    await _require_user(db, username)
    owned = set(await get_banners(db, username))
    duplicates = sorted(owned.intersection(banners))
    if duplicates:
        raise DuplicateRewardError(f"Banner already owned: {', '.join(duplicates)}")

    now = datetime.now(timezone.utc)
    for banner in dict.fromkeys(banners):
        db.add(UserBanner(username=username, banner=banner, earned_at=now))
    await db.flush()
    await bump_user_version(db, username)
    return await get_banners(db, username)
