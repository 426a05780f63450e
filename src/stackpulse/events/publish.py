"""Helpers that snapshot a committed entity and hand it to the update bus.

Call these only after the mutation has been committed.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.db.models import ChallengeCompletion, Notification
from stackpulse.events.bus import UpdateEventBus
from stackpulse.events.schemas import (
    AnswerSnapshot,
    AnswerUpdatePayload,
    ChallengeCompletedPayload,
    ChangeType,
    CommentParentType,
    CommentUpdatePayload,
    ForumSnapshot,
    ForumUpdatePayload,
    NotificationChangeType,
    NotificationUpdatePayload,
    QuestionSnapshot,
    QuestionUpdatePayload,
    UserSnapshot,
    UserUpdatePayload,
)
from stackpulse.events.snapshots import (
    answer_snapshot,
    forum_snapshot,
    notification_snapshot,
    question_snapshot,
    user_snapshot,
)
from stackpulse.events.topics import Topic


async def publish_question(
    db: AsyncSession, bus: UpdateEventBus, question_id: int, change: ChangeType = "updated"
) -> QuestionSnapshot:
    snapshot = await question_snapshot(db, question_id)
    bus.publish(Topic.QUESTION, QuestionUpdatePayload(question=snapshot, type=change))
    return snapshot


async def publish_answer(db: AsyncSession, bus: UpdateEventBus, answer_id: int) -> AnswerSnapshot:
    snapshot = await answer_snapshot(db, answer_id)
    bus.publish(Topic.ANSWER, AnswerUpdatePayload(question_id=snapshot.question_id, answer=snapshot))
    return snapshot


async def publish_comment(
    db: AsyncSession, bus: UpdateEventBus, parent_type: CommentParentType, parent_id: int
) -> CommentUpdatePayload:
    """Publish the parent post of a new comment with its full comment list."""
    if parent_type == "question":
        result: QuestionSnapshot | AnswerSnapshot = await question_snapshot(db, parent_id)
    else:
        result = await answer_snapshot(db, parent_id)
    payload = CommentUpdatePayload(result=result, type=parent_type)
    bus.publish(Topic.COMMENT, payload)
    return payload


async def publish_forum(
    db: AsyncSession, bus: UpdateEventBus, forum_id: int, change: ChangeType = "updated"
) -> ForumSnapshot:
    snapshot = await forum_snapshot(db, forum_id)
    bus.publish(Topic.FORUM, ForumUpdatePayload(forum=snapshot, type=change))
    return snapshot


def publish_forum_deleted(bus: UpdateEventBus, snapshot: ForumSnapshot) -> None:
    bus.publish(Topic.FORUM, ForumUpdatePayload(forum=snapshot, type="deleted"))


async def publish_user(
    db: AsyncSession, bus: UpdateEventBus, username: str, change: ChangeType = "updated"
) -> UserSnapshot:
    snapshot = await user_snapshot(db, username)
    bus.publish(Topic.USER, UserUpdatePayload(user=snapshot, type=change))
    return snapshot


def publish_user_deleted(bus: UpdateEventBus, snapshot: UserSnapshot) -> None:
    bus.publish(Topic.USER, UserUpdatePayload(user=snapshot, type="deleted"))


def publish_notification(
    bus: UpdateEventBus, notification: Notification, change: NotificationChangeType
) -> None:
    """Broadcast created notifications; relay read receipts to the owner only."""
    payload = NotificationUpdatePayload(notification=notification_snapshot(notification), type=change)
    if change == "read":
        bus.publish_to_user(notification.target_user, Topic.NOTIFICATION, payload)
    else:
        bus.publish(Topic.NOTIFICATION, payload)


def publish_challenge_completed(bus: UpdateEventBus, completion: ChallengeCompletion) -> None:
    bus.publish(
        Topic.CHALLENGE,
        ChallengeCompletedPayload(
            username=completion.username,
            challenge_id=completion.challenge_id,
            completed_at=completion.completed_at,
        ),
    )
