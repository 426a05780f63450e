"""User profile business logic.

Every mutation bumps ``User.version``. Routers commit and publish ``userUpdate``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.db.models import (
    ActivityLogEntry,
    ChallengeCompletion,
    ForumMembership,
    StreakDay,
    User,
    UserBadge,
    UserBanner,
)
from stackpulse.db.versioning import update_versioned
from stackpulse.errors import DuplicateValueError, EntityNotFoundError, StateConflictError
from stackpulse.gamification.badge_service import get_badges, get_banners

logger = logging.getLogger(__name__)

DEFAULT_BANNER = "#dddddd"
EMAIL_FREQUENCIES = ("hourly", "daily", "weekly")
SUBSCRIPTION_KINDS = ("browser", "email")


async def find_user(db: AsyncSession, username: str) -> User | None:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def get_user(db: AsyncSession, username: str) -> User:
    """Fetch a user by username. Raises EntityNotFoundError."""
    user = await find_user(db, username)
    if user is None:
        raise EntityNotFoundError(f"User not found: {username}")
    return user


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.id))
    return list(result.scalars())


async def create_user(
    db: AsyncSession,
    username: str,
    biography: str = "",
    emails: list[str] | None = None,
) -> User:
    if await find_user(db, username) is not None:
        raise StateConflictError(f"Username already taken: {username}")

    user = User(
        username=username,
        biography=biography,
        emails=list(dict.fromkeys(emails or [])),
        date_joined=datetime.now(timezone.utc),
        selected_banner=DEFAULT_BANNER,
        browser_notifications=True,
        email_notifications=False,
        email_frequency="weekly",
        version=1,
    )
    db.add(user)
    await db.flush()
    logger.info("User created: %s", username)
    return user


async def delete_user(db: AsyncSession, username: str) -> None:
    """Delete a user and every row keyed by their username."""
    user = await get_user(db, username)
    for model in (UserBadge, UserBanner, StreakDay, ActivityLogEntry, ForumMembership, ChallengeCompletion):
        await db.execute(delete(model).where(model.username == username))
    await db.delete(user)
    await db.flush()


async def _update(db: AsyncSession, username: str, mutate: Callable[[User], dict[str, Any]]) -> User:
    user = await get_user(db, username)
    await update_versioned(db, user, mutate)
    return user


async def update_biography(db: AsyncSession, username: str, biography: str) -> User:
    return await _update(db, username, lambda u: {"biography": biography})


async def add_email(db: AsyncSession, username: str, email: str) -> User:
    def append(user: User) -> dict[str, Any]:
        if email in user.emails:
            raise DuplicateValueError("Email already associated with this user")
        return {"emails": [*user.emails, email]}

    return await _update(db, username, append)


async def replace_email(db: AsyncSession, username: str, current: str, new: str) -> User:
    def swap(user: User) -> dict[str, Any]:
        if current not in user.emails:
            raise DuplicateValueError("Provided email is not associated with user")
        if new in user.emails:
            raise DuplicateValueError("Email already associated with this user")
        return {"emails": [new if e == current else e for e in user.emails]}

    return await _update(db, username, swap)


async def set_pinned_badge(db: AsyncSession, username: str, badge: str | None) -> User:
    """Pin one of the user's badges to their profile, or clear it with None."""
    user = await get_user(db, username)
    if badge is not None and badge not in await get_badges(db, username):
        raise DuplicateValueError("Only an earned badge can be pinned")
    await update_versioned(db, user, lambda u: {"pinned_badge": badge})
    return user


async def set_selected_banner(db: AsyncSession, username: str, banner: str) -> User:
    user = await get_user(db, username)
    if banner != DEFAULT_BANNER and banner not in await get_banners(db, username):
        raise DuplicateValueError("Only an unlocked banner can be selected")
    await update_versioned(db, user, lambda u: {"selected_banner": banner})
    return user


async def toggle_subscription(db: AsyncSession, username: str, kind: str) -> User:
    """Flip the browser or email notification subscription."""
    if kind not in SUBSCRIPTION_KINDS:
        raise ValueError(f"Invalid notification kind: {kind}")
    column = "browser_notifications" if kind == "browser" else "email_notifications"
    return await _update(db, username, lambda u: {column: not getattr(u, column)})


async def set_email_frequency(db: AsyncSession, username: str, frequency: str) -> User:
    if frequency not in EMAIL_FREQUENCIES:
        raise ValueError(f"Invalid email frequency: {frequency}")
    return await _update(db, username, lambda u: {"email_frequency": frequency})
