"""Questions, answers, comments, votes, views and read status.

Services flush; routers commit, publish the post-mutation snapshot and then run
the reward side effects.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.db.models import Answer, Comment, Forum, PostReadStatus, Question
from stackpulse.db.versioning import bump_version, update_versioned
from stackpulse.errors import EntityNotFoundError, PostingNotAllowedError
from stackpulse.events.schemas import QuestionSnapshot
from stackpulse.events.snapshots import question_snapshots
from stackpulse.forums.membership import can_post
from stackpulse.forums.service import get_forum, membership_state
from stackpulse.qa.ordering import ORDERS, filter_questions_by_search, order_questions
from stackpulse.users.service import get_user

logger = logging.getLogger(__name__)

VOTE_DIRECTIONS = ("up", "down")


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def get_question(db: AsyncSession, question_id: int) -> Question:
    """Fetch a question by ID. Raises EntityNotFoundError."""
    question = await db.get(Question, question_id)
    if question is None:
        raise EntityNotFoundError(f"Question not found: {question_id}")
    return question


async def get_answer(db: AsyncSession, answer_id: int) -> Answer:
    answer = await db.get(Answer, answer_id)
    if answer is None:
        raise EntityNotFoundError(f"Answer not found: {answer_id}")
    return answer


async def _check_posting_gate(db: AsyncSession, forum_id: int | None, username: str) -> Forum | None:
    if forum_id is None:
        return None
    forum = await get_forum(db, forum_id)
    state = await membership_state(db, forum_id, username)
    if not can_post(state, forum.type):
        raise PostingNotAllowedError(f"{username} cannot post in forum {forum.name}")
    return forum


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


async def create_question(
    db: AsyncSession,
    title: str,
    text: str,
    asked_by: str,
    tags: list[str] | None = None,
    forum_id: int | None = None,
    ask_date_time: datetime | None = None,
) -> Question:
    """Create a question, optionally inside a forum (subject to the posting gate)."""
    await get_user(db, asked_by)
    forum = await _check_posting_gate(db, forum_id, asked_by)

    question = Question(
        title=title,
        text=text,
        tags=list(dict.fromkeys(t.lower() for t in tags or [])),
        asked_by=asked_by,
        ask_date_time=ask_date_time or _now(),
        forum_id=forum_id,
        views=[],
        up_votes=[],
        down_votes=[],
        version=1,
    )
    db.add(question)
    await db.flush()
    if forum is not None:
        await bump_version(db, Forum, Forum.id == forum.id)
    return question


async def list_questions(
    db: AsyncSession,
    order: str = "newest",
    search: str = "",
    forum_id: int | None = None,
) -> list[QuestionSnapshot]:
    """Snapshots of all questions (or one forum's), searched and ordered."""
    if order not in ORDERS:
        raise ValueError(f"Unknown question order: {order}")
    query = select(Question)
    if forum_id is not None:
        query = query.where(Question.forum_id == forum_id)
    result = await db.execute(query)
    snapshots = await question_snapshots(db, list(result.scalars()))
    if search:
        snapshots = filter_questions_by_search(snapshots, search)
    return order_questions(snapshots, order)


async def view_question(db: AsyncSession, question_id: int, username: str) -> bool:
    """Record that ``username`` viewed a question. Returns True if this is a new view."""
    question = await get_question(db, question_id)

    def add_view(q: Question) -> dict[str, list[str]]:
        if username in q.views:
            return {}
        return {"views": [*q.views, username]}

    return await update_versioned(db, question, add_view)


async def vote(db: AsyncSession, question_id: int, username: str, direction: str) -> bool:
    """Toggle a vote on a question.

    Voting in one direction removes any opposite vote by the same user. Repeating a
    vote removes it. Returns True if a vote was cast, False if one was withdrawn.
    Concurrent votes on the same question are retried against the fresh vote lists.
    """
    if direction not in VOTE_DIRECTIONS:
        raise ValueError(f"Invalid vote direction: {direction}")
    question = await get_question(db, question_id)
    same, other = ("up_votes", "down_votes") if direction == "up" else ("down_votes", "up_votes")
    cast = False

    def toggle(q: Question) -> dict[str, list[str]]:
        nonlocal cast
        current: list[str] = list(getattr(q, same))
        cast = username not in current
        if cast:
            current.append(username)
        else:
            current.remove(username)
        return {same: current, other: [u for u in getattr(q, other) if u != username]}

    await update_versioned(db, question, toggle)
    return cast


async def count_questions_asked(db: AsyncSession, username: str) -> int:
    result = await db.execute(select(func.count()).select_from(Question).where(Question.asked_by == username))
    return int(result.scalar_one())


async def count_votes_cast(db: AsyncSession, username: str) -> int:
    """Number of questions the user currently has an up or down vote on."""
    result = await db.execute(select(Question.up_votes, Question.down_votes))
    return sum(1 for up, down in result.all() if username in (up or ()) or username in (down or ()))


# ---------------------------------------------------------------------------
# Answers & comments
# ---------------------------------------------------------------------------


async def add_answer(
    db: AsyncSession,
    question_id: int,
    text: str,
    ans_by: str,
    ans_date_time: datetime | None = None,
) -> Answer:
    """Add an answer to a question (subject to the question's forum posting gate)."""
    await get_user(db, ans_by)
    question = await get_question(db, question_id)
    await _check_posting_gate(db, question.forum_id, ans_by)

    answer = Answer(
        question_id=question_id,
        text=text,
        ans_by=ans_by,
        ans_date_time=ans_date_time or _now(),
        version=1,
    )
    db.add(answer)
    await db.flush()
    await bump_version(db, Question, Question.id == question_id)
    return answer


async def add_comment(
    db: AsyncSession,
    parent_type: str,
    parent_id: int,
    text: str,
    comment_by: str,
    comment_date_time: datetime | None = None,
) -> tuple[Comment, str]:
    """Attach a comment to a question or an answer.

    Returns the comment and the author of the parent post.
    """
    await get_user(db, comment_by)
    if parent_type == "question":
        parent: Question | Answer = await get_question(db, parent_id)
        parent_author = parent.asked_by
        comment = Comment(question_id=parent_id)
    elif parent_type == "answer":
        parent = await get_answer(db, parent_id)
        parent_author = parent.ans_by
        comment = Comment(answer_id=parent_id)
    else:
        raise ValueError(f"Invalid comment parent type: {parent_type}")

    comment.text = text
    comment.comment_by = comment_by
    comment.comment_date_time = comment_date_time or _now()
    db.add(comment)
    await db.flush()
    model = type(parent)
    await bump_version(db, model, model.id == parent_id)
    return comment, parent_author


# ---------------------------------------------------------------------------
# Read status
# ---------------------------------------------------------------------------


async def mark_post_read(db: AsyncSession, username: str, post_id: int) -> PostReadStatus:
    await get_question(db, post_id)
    result = await db.execute(
        select(PostReadStatus).where(
            PostReadStatus.username == username,
            PostReadStatus.post_id == post_id,
        )
    )
    status = result.scalar_one_or_none()
    if status is None:
        status = PostReadStatus(username=username, post_id=post_id, read=True, read_at=_now())
        db.add(status)
    else:
        status.read = True
        status.read_at = _now()
    await db.flush()
    return status


async def is_post_read(db: AsyncSession, username: str, post_id: int) -> bool:
    result = await db.execute(
        select(PostReadStatus.read).where(
            PostReadStatus.username == username,
            PostReadStatus.post_id == post_id,
        )
    )
    return bool(result.scalar_one_or_none())

