"""Build broadcast snapshots from persisted rows.

Loaders take identifiers and re-select, so they are safe to call after a commit or
a rollback has expired previously loaded instances.
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.db.models import (
    ActivityLogEntry,
    Answer,
    Comment,
    Forum,
    ForumMembership,
    Notification,
    Question,
    StreakDay,
    User,
    UserBadge,
    UserBanner,
)
from stackpulse.errors import EntityNotFoundError
from stackpulse.events.schemas import (
    ActivitySnapshot,
    AnswerSnapshot,
    CommentSnapshot,
    ForumSnapshot,
    NotificationSnapshot,
    QuestionSnapshot,
    UserSnapshot,
)


def _comment(comment: Comment) -> CommentSnapshot:
    return CommentSnapshot(
        id=comment.id,
        text=comment.text,
        comment_by=comment.comment_by,
        comment_date_time=comment.comment_date_time,
    )


# --- Users ---


async def user_snapshot(db: AsyncSession, username: str) -> UserSnapshot:
    result = await db.execute(
        select(User).where(User.username == username).execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise EntityNotFoundError(f"User not found: {username}")

    badges = await db.execute(
        select(UserBadge.badge).where(UserBadge.username == username).order_by(UserBadge.id)
    )
    banners = await db.execute(
        select(UserBanner.banner).where(UserBanner.username == username).order_by(UserBanner.id)
    )
    streak = await db.execute(
        select(StreakDay.day).where(StreakDay.username == username).order_by(StreakDay.day)
    )
    activity = await db.execute(
        select(ActivityLogEntry).where(ActivityLogEntry.username == username).order_by(ActivityLogEntry.day)
    )

    return UserSnapshot(
        username=user.username,
        biography=user.biography,
        emails=tuple(user.emails or ()),
        date_joined=user.date_joined,
        badges=tuple(badges.scalars()),
        banners=tuple(banners.scalars()),
        pinned_badge=user.pinned_badge,
        selected_banner=user.selected_banner,
        streak=tuple(streak.scalars()),
        activity_log=tuple(
            ActivitySnapshot(day=e.day, votes=e.votes, questions=e.questions, answers=e.answers)
            for e in activity.scalars()
        ),
        browser_notifications=user.browser_notifications,
        email_notifications=user.email_notifications,
        email_frequency=user.email_frequency,
        version=user.version,
    )


# --- Forums ---


async def forum_snapshot(db: AsyncSession, forum_id: int) -> ForumSnapshot:
    forum = await db.get(Forum, forum_id, populate_existing=True)
    if forum is None:
        raise EntityNotFoundError(f"Forum not found: {forum_id}")

    result = await db.execute(
        select(ForumMembership)
        .where(ForumMembership.forum_id == forum_id)
        .order_by(ForumMembership.id)
    )
    members: list[str] = []
    moderators: list[str] = []
    awaiting: list[str] = []
    banned: list[str] = []
    for row in result.scalars():
        if row.state == "member":
            members.append(row.username)
            if row.is_moderator:
                moderators.append(row.username)
        elif row.state == "awaiting_approval":
            awaiting.append(row.username)
        elif row.state == "banned":
            banned.append(row.username)

    return ForumSnapshot(
        id=forum.id,
        name=forum.name,
        description=forum.description,
        type=forum.type,
        created_by=forum.created_by,
        created_at=forum.created_at,
        members=tuple(members),
        moderators=tuple(moderators),
        awaiting_members=tuple(awaiting),
        banned_members=tuple(banned),
        version=forum.version,
    )


# --- Questions / answers ---


async def _answer_snapshots(db: AsyncSession, answers: list[Answer]) -> list[AnswerSnapshot]:
    if not answers:
        return []
    result = await db.execute(
        select(Comment)
        .where(Comment.answer_id.in_([a.id for a in answers]))
        .order_by(Comment.id)
    )
    by_answer: dict[int, list[CommentSnapshot]] = defaultdict(list)
    for comment in result.scalars():
        by_answer[comment.answer_id].append(_comment(comment))  # type: ignore[index]

    return [
        AnswerSnapshot(
            id=a.id,
            question_id=a.question_id,
            text=a.text,
            ans_by=a.ans_by,
            ans_date_time=a.ans_date_time,
            comments=tuple(by_answer.get(a.id, ())),
            version=a.version,
        )
        for a in answers
    ]


async def answer_snapshot(db: AsyncSession, answer_id: int) -> AnswerSnapshot:
    answer = await db.get(Answer, answer_id, populate_existing=True)
    if answer is None:
        raise EntityNotFoundError(f"Answer not found: {answer_id}")
    return (await _answer_snapshots(db, [answer]))[0]


async def question_snapshots(db: AsyncSession, questions: list[Question]) -> list[QuestionSnapshot]:
    """Snapshot many questions with their answers and comments in three queries."""
    if not questions:
        return []
    ids = [q.id for q in questions]

    answers = await db.execute(
        select(Answer).where(Answer.question_id.in_(ids)).order_by(Answer.id.desc())
    )
    answers_by_question: dict[int, list[AnswerSnapshot]] = defaultdict(list)
    for answer in await _answer_snapshots(db, list(answers.scalars())):
        answers_by_question[answer.question_id].append(answer)

    comments = await db.execute(
        select(Comment).where(Comment.question_id.in_(ids)).order_by(Comment.id)
    )
    comments_by_question: dict[int, list[CommentSnapshot]] = defaultdict(list)
    for comment in comments.scalars():
        comments_by_question[comment.question_id].append(_comment(comment))  # type: ignore[index]

    return [
        QuestionSnapshot(
            id=q.id,
            title=q.title,
            text=q.text,
            tags=tuple(q.tags or ()),
            asked_by=q.asked_by,
            ask_date_time=q.ask_date_time,
            forum_id=q.forum_id,
            views=tuple(q.views or ()),
            up_votes=tuple(q.up_votes or ()),
            down_votes=tuple(q.down_votes or ()),
            answers=tuple(answers_by_question.get(q.id, ())),
            comments=tuple(comments_by_question.get(q.id, ())),
            version=q.version,
        )
        for q in questions
    ]


async def question_snapshot(db: AsyncSession, question_id: int) -> QuestionSnapshot:
    question = await db.get(Question, question_id, populate_existing=True)
    if question is None:
        raise EntityNotFoundError(f"Question not found: {question_id}")
    return (await question_snapshots(db, [question]))[0]


# --- Notifications ---


def notification_snapshot(notification: Notification) -> NotificationSnapshot:
    return NotificationSnapshot(
        id=notification.id,
        title=notification.title,
        text=notification.text,
        kind=notification.kind,
        target_user=notification.target_user,
        read=notification.read,
        created_at=notification.created_at,
        version=notification.version,
    )
