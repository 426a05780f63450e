"""Question, answer, comment and read-status endpoints.

Each mutation commits, publishes its post-mutation snapshot, then runs the reward
side effects. Side-effect failures never change the response.
"""

from __future__ import annotations

from typing import Literal

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.database import get_session
from stackpulse.dependencies import get_event_bus
from stackpulse.errors import StackPulseError, http_error
from stackpulse.events.bus import UpdateEventBus
from stackpulse.events.publish import publish_answer, publish_comment, publish_forum, publish_question
from stackpulse.events.schemas import AnswerUpdatePayload, CommentUpdatePayload, QuestionSnapshot
from stackpulse.events.snapshots import question_snapshot
from stackpulse.gamification.trigger_engine import run_rewards
from stackpulse.notifications.service import notify
from stackpulse.qa.schemas import (
    AnswerCreateRequest,
    CommentCreateRequest,
    QuestionCreateRequest,
    ReadStatusRequest,
    ReadStatusResponse,
    VoteRequest,
)
from stackpulse.qa.service import (
    add_answer,
    add_comment,
    create_question,
    is_post_read,
    list_questions,
    mark_post_read,
    view_question,
    vote,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["Questions"])


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


@router.post("/questions", response_model=QuestionSnapshot, status_code=201)
async def create_question_endpoint(
    body: QuestionCreateRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> QuestionSnapshot:
    """Ask a question, optionally inside a forum."""
    try:
        question = await create_question(
            db,
            title=body.title,
            text=body.text,
            asked_by=body.asked_by,
            tags=body.tags,
            forum_id=body.forum_id,
            ask_date_time=body.ask_date_time,
        )
    except (StackPulseError, ValueError) as e:
        raise http_error(e) from e
    question_id = question.id
    asked_at = question.ask_date_time
    await db.commit()

    snapshot = await publish_question(db, bus, question_id, "created")
    if body.forum_id is not None:
        await publish_forum(db, bus, body.forum_id)
    logger.info("question_created", question_id=question_id, asked_by=body.asked_by)

    await run_rewards(db, bus, body.asked_by, "question", asked_at)
    return snapshot


@router.get("/questions", response_model=list[QuestionSnapshot])
async def list_questions_endpoint(
    order: Literal["newest", "unanswered", "active", "mostViewed"] = Query("newest"),
    search: str = Query("", max_length=256),
    db: AsyncSession = Depends(get_session),
) -> list[QuestionSnapshot]:
    """List questions in the given order, optionally filtered by ``keyword [tag]`` search."""
    return await list_questions(db, order=order, search=search)


@router.get("/questions/{question_id}", response_model=QuestionSnapshot)
async def get_question_endpoint(
    question_id: int,
    username: str | None = Query(None, max_length=64),
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> QuestionSnapshot:
    """Fetch a question. When ``username`` is given the view is recorded."""
    try:
        if username and await view_question(db, question_id, username):
            await db.commit()
            await publish_question(db, bus, question_id)
        return await question_snapshot(db, question_id)
    except StackPulseError as e:
        raise http_error(e) from e


async def _vote(
    question_id: int,
    direction: str,
    username: str,
    db: AsyncSession,
    bus: UpdateEventBus,
) -> QuestionSnapshot:
    try:
        cast = await vote(db, question_id, username, direction)
    except (StackPulseError, ValueError) as e:
        raise http_error(e) from e
    await db.commit()

    snapshot = await publish_question(db, bus, question_id)
    if cast:
        await run_rewards(db, bus, username, "vote")
    return snapshot


@router.post("/questions/{question_id}/upvote", response_model=QuestionSnapshot)
async def upvote_question(
    question_id: int,
    body: VoteRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> QuestionSnapshot:
    """Toggle an upvote (removes an existing downvote by the same user)."""
    return await _vote(question_id, "up", body.username, db, bus)


@router.post("/questions/{question_id}/downvote", response_model=QuestionSnapshot)
async def downvote_question(
    question_id: int,
    body: VoteRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> QuestionSnapshot:
    """Toggle a downvote (removes an existing upvote by the same user)."""
    return await _vote(question_id, "down", body.username, db, bus)


# ---------------------------------------------------------------------------
# Answers & comments
# ---------------------------------------------------------------------------


@router.post("/answers", response_model=AnswerUpdatePayload, status_code=201)
async def add_answer_endpoint(
    body: AnswerCreateRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> AnswerUpdatePayload:
    """Answer a question and notify its author."""
    try:
        answer = await add_answer(
            db,
            question_id=body.question_id,
            text=body.text,
            ans_by=body.ans_by,
            ans_date_time=body.ans_date_time,
        )
    except StackPulseError as e:
        raise http_error(e) from e
    answer_id = answer.id
    answered_at = answer.ans_date_time
    await db.commit()

    snapshot = await publish_answer(db, bus, answer_id)

    question = await question_snapshot(db, body.question_id)
    if question.asked_by != body.ans_by:
        await notify(
            db,
            bus,
            question.asked_by,
            title="New Answer to Your Post",
            text=f"A new answer has been given to your question: {question.title}",
            metadata={"question_id": body.question_id, "answer_id": answer_id},
        )
    await run_rewards(db, bus, body.ans_by, "answer", answered_at)
    return AnswerUpdatePayload(question_id=body.question_id, answer=snapshot)


@router.post("/comments", response_model=CommentUpdatePayload, status_code=201)
async def add_comment_endpoint(
    body: CommentCreateRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> CommentUpdatePayload:
    """Comment on a question or an answer and notify the post's author."""
    try:
        _comment, parent_author = await add_comment(
            db,
            parent_type=body.parent_type,
            parent_id=body.parent_id,
            text=body.text,
            comment_by=body.comment_by,
            comment_date_time=body.comment_date_time,
        )
    except (StackPulseError, ValueError) as e:
        raise http_error(e) from e
    await db.commit()

    payload = await publish_comment(db, bus, body.parent_type, body.parent_id)

    if parent_author != body.comment_by:
        await notify(
            db,
            bus,
            parent_author,
            title="New Comment on Your Post",
            text=f"{body.comment_by} commented: {body.text}",
            metadata={"parent_type": body.parent_type, "parent_id": body.parent_id},
        )
    return payload


# ---------------------------------------------------------------------------
# Read status
# ---------------------------------------------------------------------------


@router.post("/read-status/{post_id}", response_model=ReadStatusResponse)
async def mark_read_endpoint(
    post_id: int,
    body: ReadStatusRequest,
    db: AsyncSession = Depends(get_session),
) -> ReadStatusResponse:
    """Mark a post as read by a user."""
    try:
        await mark_post_read(db, body.username, post_id)
    except StackPulseError as e:
        raise http_error(e) from e
    await db.commit()
    return ReadStatusResponse(post_id=post_id, username=body.username, read=True)


@router.get("/read-status/{post_id}", response_model=ReadStatusResponse)
async def check_read_endpoint(
    post_id: int,
    username: str = Query(..., min_length=1, max_length=64),
    db: AsyncSession = Depends(get_session),
) -> ReadStatusResponse:
    read = await is_post_read(db, username, post_id)
    return ReadStatusResponse(post_id=post_id, username=username, read=read)
