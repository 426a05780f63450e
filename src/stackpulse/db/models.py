"""ORM models for the forum, Q&A, reward and notification tables.

Every entity that is broadcast carries a ``version`` column. Services bump it on
each mutation so clients can discard stale snapshots.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stackpulse.db.base import Base


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Forum user profile. Identity on the wire is ``username``."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    biography: Mapped[str] = mapped_column(Text, nullable=False, default="")
    emails: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    date_joined: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    pinned_badge: Mapped[str | None] = mapped_column(String(256), nullable=True)
    selected_banner: Mapped[str] = mapped_column(String(64), nullable=False, default="#dddddd")
    browser_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_frequency: Mapped[str] = mapped_column(String(16), nullable=False, default="weekly")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


# ---------------------------------------------------------------------------
# Gamification
# ---------------------------------------------------------------------------


class UserBadge(Base):
    """Badges earned by users. UNIQUE(username, badge) prevents duplicates."""

    __tablename__ = "user_badges"
    __table_args__ = (UniqueConstraint("username", "badge", name="uq_user_badges_username_badge"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.username", ondelete="CASCADE"), nullable=False
    )
    badge: Mapped[str] = mapped_column(String(256), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserBanner(Base):
    """Banner colors unlocked by users. UNIQUE(username, banner)."""

    __tablename__ = "user_banners"
    __table_args__ = (UniqueConstraint("username", "banner", name="uq_user_banners_username_banner"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.username", ondelete="CASCADE"), nullable=False
    )
    banner: Mapped[str] = mapped_column(String(64), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class StreakDay(Base):
    """One row per calendar day in the user's current streak."""

    __tablename__ = "streak_days"
    __table_args__ = (UniqueConstraint("username", "day", name="uq_streak_days_username_day"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.username", ondelete="CASCADE"), nullable=False
    )
    day: Mapped[date] = mapped_column(Date, nullable=False)


class ActivityLogEntry(Base):
    """Per-day activity counters. Counts only grow within a day."""

    __tablename__ = "activity_log"
    __table_args__ = (UniqueConstraint("username", "day", name="uq_activity_log_username_day"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.username", ondelete="CASCADE"), nullable=False
    )
    day: Mapped[date] = mapped_column(Date, nullable=False)
    votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    questions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    answers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ---------------------------------------------------------------------------
# Forums
# ---------------------------------------------------------------------------


class Forum(Base):
    __tablename__ = "forums"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="public")
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class ForumMembership(Base):
    """A user's relationship to a forum. No row means non-member."""

    __tablename__ = "forum_memberships"
    __table_args__ = (UniqueConstraint("forum_id", "username", name="uq_forum_memberships_forum_username"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    forum_id: Mapped[int] = mapped_column(Integer, ForeignKey("forums.id", ondelete="CASCADE"), nullable=False)
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    state: Mapped[str] = mapped_column(String(32), nullable=False)
    is_moderator: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Q&A
# ---------------------------------------------------------------------------


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    asked_by: Mapped[str] = mapped_column(String(64), nullable=False)
    ask_date_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    forum_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("forums.id", ondelete="SET NULL"), nullable=True
    )
    views: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    up_votes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    down_votes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class Answer(Base):
    __tablename__ = "answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    ans_by: Mapped[str] = mapped_column(String(64), nullable=False)
    ans_date_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class Comment(Base):
    """A comment attached to exactly one question or one answer."""

    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=True
    )
    answer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("answers.id", ondelete="CASCADE"), nullable=True
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    comment_by: Mapped[str] = mapped_column(String(64), nullable=False)
    comment_date_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PostReadStatus(Base):
    """Per (user, post) read flag."""

    __tablename__ = "post_read_status"
    __table_args__ = (UniqueConstraint("username", "post_id", name="uq_post_read_status_username_post"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    post_id: Mapped[int] = mapped_column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Daily challenges
# ---------------------------------------------------------------------------


class Challenge(Base):
    """A challenge served on one UTC day while active."""

    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    day: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ChallengeCompletion(Base):
    """A user's completion of a challenge. UNIQUE(username, challenge_id) allows one each."""

    __tablename__ = "challenge_completions"
    __table_args__ = (
        UniqueConstraint("username", "challenge_id", name="uq_challenge_completions_username_challenge"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.username", ondelete="CASCADE"), nullable=False
    )
    challenge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """Persisted user notifications. Never deleted; ``read`` flips instead."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="browser")
    target_user: Mapped[str] = mapped_column(String(64), nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notification_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
