"""Entity snapshots and update payloads.

Snapshots are immutable value objects holding the full post-mutation state of one
entity. Payloads wrap a snapshot with the change ``type`` for its topic.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

ChangeType = Literal["created", "updated", "deleted"]
NotificationChangeType = Literal["created", "read"]
CommentParentType = Literal["question", "answer"]


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Entity snapshots ---


class CommentSnapshot(Snapshot):
    id: int
    text: str
    comment_by: str
    comment_date_time: datetime


class AnswerSnapshot(Snapshot):
    id: int
    question_id: int
    text: str
    ans_by: str
    ans_date_time: datetime
    comments: tuple[CommentSnapshot, ...] = ()
    version: int = 1


class QuestionSnapshot(Snapshot):
    id: int
    title: str
    text: str
    tags: tuple[str, ...] = ()
    asked_by: str
    ask_date_time: datetime
    forum_id: int | None = None
    views: tuple[str, ...] = ()
    up_votes: tuple[str, ...] = ()
    down_votes: tuple[str, ...] = ()
    answers: tuple[AnswerSnapshot, ...] = ()
    comments: tuple[CommentSnapshot, ...] = ()
    version: int = 1


class ForumSnapshot(Snapshot):
    id: int
    name: str
    description: str = ""
    type: Literal["public", "private"] = "public"
    created_by: str
    created_at: datetime
    members: tuple[str, ...] = ()
    moderators: tuple[str, ...] = ()
    awaiting_members: tuple[str, ...] = ()
    banned_members: tuple[str, ...] = ()
    version: int = 1


class ActivitySnapshot(Snapshot):
    day: date
    votes: int = 0
    questions: int = 0
    answers: int = 0


class UserSnapshot(Snapshot):
    username: str
    biography: str = ""
    emails: tuple[str, ...] = ()
    date_joined: datetime
    badges: tuple[str, ...] = ()
    banners: tuple[str, ...] = ()
    pinned_badge: str | None = None
    selected_banner: str = "#dddddd"
    streak: tuple[date, ...] = ()
    activity_log: tuple[ActivitySnapshot, ...] = ()
    browser_notifications: bool = True
    email_notifications: bool = False
    email_frequency: Literal["hourly", "daily", "weekly"] = "weekly"
    version: int = 1


class NotificationSnapshot(Snapshot):
    id: int
    title: str
    text: str = ""
    kind: Literal["email", "browser"] = "browser"
    target_user: str
    read: bool = False
    created_at: datetime
    version: int = 1


# --- Topic payloads ---


class QuestionUpdatePayload(Snapshot):
    question: QuestionSnapshot
    type: ChangeType


class AnswerUpdatePayload(Snapshot):
    question_id: int
    answer: AnswerSnapshot
    type: Literal["created"] = "created"


class CommentUpdatePayload(Snapshot):
    result: QuestionSnapshot | AnswerSnapshot
    type: CommentParentType


class ForumUpdatePayload(Snapshot):
    forum: ForumSnapshot
    type: ChangeType


class UserUpdatePayload(Snapshot):
    user: UserSnapshot
    type: ChangeType


class NotificationUpdatePayload(Snapshot):
    notification: NotificationSnapshot
    type: NotificationChangeType


class ChallengeCompletedPayload(Snapshot):
    """Completions are append-only, so the payload carries no change type."""

    username: str
    challenge_id: int
    completed_at: datetime
