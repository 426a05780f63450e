"""Streak tracking: daily activity log and consecutive-day streaks."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.db.models import ActivityLogEntry, StreakDay

logger = logging.getLogger(__name__)

ACTIVITY_COLUMNS = {
    "vote": "votes",
    "question": "questions",
    "answer": "answers",
}


def to_calendar_day(when: datetime) -> date:
    """Normalize a timestamp to its UTC calendar day. Naive datetimes are taken as UTC."""
    if when.tzinfo is None:
        return when.date()
    return when.astimezone(timezone.utc).date()


def is_sequential(days: list[date]) -> bool:
    """True when every adjacent pair of days differs by exactly one day."""
    return all(b - a == timedelta(days=1) for a, b in zip(days, days[1:]))


def advance_streak(streak: list[date], day: date) -> list[date]:
    """Return the streak after activity on ``day``.

    An empty streak starts at ``day``. Activity on the streak's last day or on an
    earlier day leaves it unchanged. Otherwise ``day`` is appended, and if the result
    is no longer a run of consecutive days the streak restarts at ``day``.
    """
    if not streak:
        return [day]
    if day <= streak[-1]:
        return list(streak)
    extended = [*streak, day]
    if not is_sequential(extended):
        return [day]
    return extended


async def get_streak(db: AsyncSession, username: str) -> list[date]:
    result = await db.execute(
        select(StreakDay.day).where(StreakDay.username == username).order_by(StreakDay.day)
    )
    return list(result.scalars())


async def get_activity_log(db: AsyncSession, username: str) -> list[ActivityLogEntry]:
    result = await db.execute(
        select(ActivityLogEntry)
        .where(ActivityLogEntry.username == username)
        .order_by(ActivityLogEntry.day)
    )
    return list(result.scalars())


async def _bump_activity_log(db: AsyncSession, username: str, day: date, activity: str) -> None:
    column = ACTIVITY_COLUMNS[activity]
    result = await db.execute(
        select(ActivityLogEntry).where(
            ActivityLogEntry.username == username,
            ActivityLogEntry.day == day,
        )
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        entry = ActivityLogEntry(username=username, day=day, votes=0, questions=0, answers=0)
        db.add(entry)
    setattr(entry, column, getattr(entry, column) + 1)


async def record_activity(
    db: AsyncSession,
    username: str,
    activity: str,
    when: datetime,
) -> list[date]:
    """Record one qualifying activity and update the streak.

    Flushes but does not commit. Returns the streak after the update.
    Raises ValueError for an unknown activity kind.
    """
    if activity not in ACTIVITY_COLUMNS:
        msg = f"Unknown activity: {activity}"
        raise ValueError(msg)

    day = to_calendar_day(when)
    current = await get_streak(db, username)
    updated = advance_streak(current, day)

    if updated != current:
        if updated[0] != (current[0] if current else None):
            # Restarted: drop the previous run
            await db.execute(delete(StreakDay).where(StreakDay.username == username))
        db.add(StreakDay(username=username, day=day))
        if current and len(updated) == 1:
            logger.info("Streak reset for %s on %s", username, day.isoformat())

    await _bump_activity_log(db, username, day, activity)
    await db.flush()
    return updated
