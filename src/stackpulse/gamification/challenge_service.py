"""Daily challenges and their one-per-user completions."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.db.models import Challenge, ChallengeCompletion
from stackpulse.errors import EntityNotFoundError, StateConflictError
from stackpulse.users.service import get_user

logger = logging.getLogger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


async def create_challenge(
    db: AsyncSession,
    title: str,
    day: date,
    description: str = "",
    is_active: bool = True,
) -> Challenge:
    challenge = Challenge(title=title, description=description, day=day, is_active=is_active)
    db.add(challenge)
    await db.flush()
    logger.info("Challenge %s scheduled for %s", challenge.id, day)
    return challenge


async def get_daily_challenge(db: AsyncSession, today: date | None = None) -> Challenge:
    """Return the first active challenge scheduled for ``today`` (UTC by default).

    Raises EntityNotFoundError when none is scheduled.
    """
    day = today or utc_today()
    result = await db.execute(
        select(Challenge)
        .where(Challenge.day == day, Challenge.is_active.is_(True))
        .order_by(Challenge.id)
        .limit(1)
    )
    challenge = result.scalar_one_or_none()
    if challenge is None:
        raise EntityNotFoundError("No challenge available for today")
    return challenge


async def has_completed(db: AsyncSession, username: str, challenge_id: int) -> bool:
    result = await db.execute(
        select(ChallengeCompletion.id).where(
            ChallengeCompletion.username == username,
            ChallengeCompletion.challenge_id == challenge_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def complete_challenge(db: AsyncSession, username: str, challenge_id: int) -> ChallengeCompletion:
    """Record that ``username`` completed a challenge. Flushes but does not commit.

    Raises:
        EntityNotFoundError: unknown user or challenge
        StateConflictError: the user already completed it, including a concurrent completion
    """
    await get_user(db, username)
    if await db.get(Challenge, challenge_id) is None:
        raise EntityNotFoundError(f"Challenge not found: {challenge_id}")
    if await has_completed(db, username, challenge_id):
        raise StateConflictError("Challenge already completed by this user")

    completion = ChallengeCompletion(
        username=username,
        challenge_id=challenge_id,
        completed_at=datetime.now(timezone.utc),
    )
    db.add(completion)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise StateConflictError("Challenge already completed by this user") from e

    logger.info("Challenge %s completed by %s", challenge_id, username)
    return completion
