"""Forum endpoints: CRUD, membership transitions and forum question lists."""

from __future__ import annotations

from typing import Literal

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.database import get_session
from stackpulse.dependencies import get_event_bus
from stackpulse.errors import StackPulseError, http_error
from stackpulse.events.bus import UpdateEventBus
from stackpulse.events.publish import publish_forum, publish_forum_deleted, publish_question
from stackpulse.events.schemas import ForumSnapshot, QuestionSnapshot
from stackpulse.events.snapshots import forum_snapshot
from stackpulse.forums.membership import MEMBER, can_post
from stackpulse.forums.schemas import (
    ForumCreateRequest,
    MembershipRequest,
    MembershipResponse,
    ModerationRequest,
)
from stackpulse.forums.service import (
    apply_membership_action,
    create_forum,
    delete_forum,
    get_forum,
    get_membership,
    list_forums,
)
from stackpulse.qa.service import list_questions

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/forums", tags=["Forums"])


@router.post("", response_model=ForumSnapshot, status_code=201)
async def create_forum_endpoint(
    body: ForumCreateRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> ForumSnapshot:
    """Create a forum. The creator becomes its first moderator."""
    try:
        forum = await create_forum(
            db,
            name=body.name,
            created_by=body.created_by,
            description=body.description,
            forum_type=body.type,
        )
    except (StackPulseError, ValueError) as e:
        raise http_error(e) from e
    forum_id = forum.id
    await db.commit()
    logger.info("forum_created", forum_id=forum_id, created_by=body.created_by)
    return await publish_forum(db, bus, forum_id, "created")


@router.get("", response_model=list[ForumSnapshot])
async def list_forums_endpoint(
    db: AsyncSession = Depends(get_session),
) -> list[ForumSnapshot]:
    forums = await list_forums(db)
    return [await forum_snapshot(db, f.id) for f in forums]


@router.get("/{forum_id}", response_model=ForumSnapshot)
async def get_forum_endpoint(
    forum_id: int,
    db: AsyncSession = Depends(get_session),
) -> ForumSnapshot:
    try:
        return await forum_snapshot(db, forum_id)
    except StackPulseError as e:
        raise http_error(e) from e


@router.delete("/{forum_id}", status_code=200)
async def delete_forum_endpoint(
    forum_id: int,
    username: str = Query(..., min_length=1, max_length=64),
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> dict[str, str]:
    """Delete a forum (moderators only)."""
    try:
        snapshot = await forum_snapshot(db, forum_id)
        detached = await delete_forum(db, forum_id, username)
    except StackPulseError as e:
        raise http_error(e) from e
    await db.commit()
    publish_forum_deleted(bus, snapshot.model_copy(update={"version": snapshot.version + 1}))
    for question_id in detached:
        await publish_question(db, bus, question_id)
    return {"detail": "Forum deleted"}


@router.get("/{forum_id}/questions", response_model=list[QuestionSnapshot])
async def forum_questions_endpoint(
    forum_id: int,
    order: Literal["newest", "unanswered", "active", "mostViewed"] = Query("newest"),
    db: AsyncSession = Depends(get_session),
) -> list[QuestionSnapshot]:
    try:
        await get_forum(db, forum_id)
    except StackPulseError as e:
        raise http_error(e) from e
    return await list_questions(db, order=order, forum_id=forum_id)


@router.get("/{forum_id}/members/{username}", response_model=MembershipResponse)
async def membership_endpoint(
    forum_id: int,
    username: str,
    db: AsyncSession = Depends(get_session),
) -> MembershipResponse:
    """A user's membership state in a forum and whether they may post there."""
    try:
        forum = await get_forum(db, forum_id)
    except StackPulseError as e:
        raise http_error(e) from e
    membership = await get_membership(db, forum_id, username)
    state = membership.state if membership else "non_member"
    return MembershipResponse(
        forum_id=forum_id,
        username=username,
        state=state,
        is_moderator=bool(membership and membership.state == MEMBER and membership.is_moderator),
        can_post=can_post(state, forum.type),
    )


# ---------------------------------------------------------------------------
# Membership transitions
# ---------------------------------------------------------------------------


async def _transition(
    db: AsyncSession,
    bus: UpdateEventBus,
    forum_id: int,
    action: str,
    actor: str,
    target: str | None = None,
) -> ForumSnapshot:
    try:
        await apply_membership_action(db, forum_id, action, actor, target)
    except (StackPulseError, ValueError) as e:
        raise http_error(e) from e
    await db.commit()
    logger.info("forum_membership_changed", forum_id=forum_id, action=action, actor=actor, target=target)
    return await publish_forum(db, bus, forum_id)


@router.post("/{forum_id}/join", response_model=ForumSnapshot)
async def join_forum(
    forum_id: int,
    body: MembershipRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> ForumSnapshot:
    """Join a public forum, or request to join a private one."""
    return await _transition(db, bus, forum_id, "join", body.username)


@router.post("/{forum_id}/cancel", response_model=ForumSnapshot)
async def cancel_join_request(
    forum_id: int,
    body: MembershipRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> ForumSnapshot:
    return await _transition(db, bus, forum_id, "cancel", body.username)


@router.post("/{forum_id}/leave", response_model=ForumSnapshot)
async def leave_forum(
    forum_id: int,
    body: MembershipRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> ForumSnapshot:
    return await _transition(db, bus, forum_id, "leave", body.username)


@router.post("/{forum_id}/approve", response_model=ForumSnapshot)
async def approve_member(
    forum_id: int,
    body: ModerationRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> ForumSnapshot:
    return await _transition(db, bus, forum_id, "approve", body.moderator, body.username)


@router.post("/{forum_id}/ban", response_model=ForumSnapshot)
async def ban_member(
    forum_id: int,
    body: ModerationRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> ForumSnapshot:
    return await _transition(db, bus, forum_id, "ban", body.moderator, body.username)


@router.post("/{forum_id}/unban", response_model=ForumSnapshot)
async def unban_member(
    forum_id: int,
    body: ModerationRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> ForumSnapshot:
    return await _transition(db, bus, forum_id, "unban", body.moderator, body.username)
