"""Forum business logic.

Rules:
- Forum names are unique
- The creator becomes a member and moderator
- Membership changes follow the transition table in ``forums.membership``
- approve / ban / unban require a moderator; moderators cannot be banned
- Every change bumps ``Forum.version``; routers commit and publish ``forumUpdate``
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.db.models import Forum, ForumMembership, Question
from stackpulse.db.versioning import bump_version
from stackpulse.errors import EntityNotFoundError, PermissionDeniedError, StateConflictError
from stackpulse.forums.membership import (
    MEMBER,
    MODERATOR_ACTIONS,
    NON_MEMBER,
    TRANSITIONS,
    can_post,
    next_state,
)
from stackpulse.users.service import get_user

logger = logging.getLogger(__name__)

FORUM_TYPES = ("public", "private")


async def get_forum(db: AsyncSession, forum_id: int) -> Forum:
    """Fetch a forum by ID. Raises EntityNotFoundError."""
    forum = await db.get(Forum, forum_id)
    if forum is None:
        raise EntityNotFoundError(f"Forum not found: {forum_id}")
    return forum


async def get_forum_by_name(db: AsyncSession, name: str) -> Forum:
    result = await db.execute(select(Forum).where(Forum.name == name))
    forum = result.scalar_one_or_none()
    if forum is None:
        raise EntityNotFoundError(f"Forum not found: {name}")
    return forum


async def list_forums(db: AsyncSession) -> list[Forum]:
    result = await db.execute(select(Forum).order_by(Forum.id.desc()))
    return list(result.scalars())


async def get_membership(db: AsyncSession, forum_id: int, username: str) -> ForumMembership | None:
    result = await db.execute(
        select(ForumMembership).where(
            ForumMembership.forum_id == forum_id,
            ForumMembership.username == username,
        )
    )
    return result.scalar_one_or_none()


async def membership_state(db: AsyncSession, forum_id: int, username: str) -> str:
    membership = await get_membership(db, forum_id, username)
    return membership.state if membership else NON_MEMBER


async def is_moderator(db: AsyncSession, forum_id: int, username: str) -> bool:
    membership = await get_membership(db, forum_id, username)
    return membership is not None and membership.state == MEMBER and membership.is_moderator


async def check_can_post(db: AsyncSession, forum: Forum, username: str) -> bool:
    return can_post(await membership_state(db, forum.id, username), forum.type)


async def create_forum(
    db: AsyncSession,
    name: str,
    created_by: str,
    description: str = "",
    forum_type: str = "public",
) -> Forum:
    """Create a forum. The creator becomes its first member and moderator."""
    if forum_type not in FORUM_TYPES:
        raise ValueError(f"Invalid forum type: {forum_type}")
    await get_user(db, created_by)

    existing = await db.execute(select(Forum.id).where(Forum.name == name))
    if existing.scalar_one_or_none() is not None:
        raise StateConflictError("A forum with this name already exists")

    now = datetime.now(timezone.utc)
    forum = Forum(
        name=name,
        description=description,
        type=forum_type,
        created_by=created_by,
        created_at=now,
        version=1,
    )
    db.add(forum)
    await db.flush()

    db.add(ForumMembership(
        forum_id=forum.id,
        username=created_by,
        state=MEMBER,
        is_moderator=True,
        updated_at=now,
    ))
    await db.flush()
    logger.info("Forum %s created by %s", name, created_by)
    return forum


async def delete_forum(db: AsyncSession, forum_id: int, username: str) -> list[int]:
    """Delete a forum. Only a moderator may delete.

    Its questions become forum-less with a bumped version. Returns their IDs so the
    caller can broadcast them.
    """
    forum = await get_forum(db, forum_id)
    if not await is_moderator(db, forum_id, username):
        raise PermissionDeniedError("Only a moderator can delete this forum")

    await db.execute(delete(ForumMembership).where(ForumMembership.forum_id == forum_id))
    result = await db.execute(select(Question.id).where(Question.forum_id == forum_id))
    detached = list(result.scalars())
    await db.execute(
        update(Question)
        .where(Question.forum_id == forum_id)
        .values(forum_id=None, version=Question.version + 1)
        .execution_options(synchronize_session=False)
    )
    await db.delete(forum)
    await db.flush()
    logger.info("Forum %s deleted by %s, %d questions detached", forum_id, username, len(detached))
    return detached


async def apply_membership_action(
    db: AsyncSession,
    forum_id: int,
    action: str,
    actor: str,
    target: str | None = None,
) -> Forum:
    """Apply one membership action and return the forum.

    join / cancel / leave act on ``actor`` itself. approve / ban / unban act on
    ``target`` and require ``actor`` to be a moderator.

    Raises:
        MembershipTransitionError: the action is not valid from the current state
        PermissionDeniedError: moderator action by a non-moderator, or an illegal ban
    """
    if action not in TRANSITIONS:
        raise ValueError(f"Unknown membership action: {action}")

    forum = await get_forum(db, forum_id)

    if action in MODERATOR_ACTIONS:
        if target is None:
            raise ValueError(f"'{action}' requires a target user")
        if not await is_moderator(db, forum_id, actor):
            raise PermissionDeniedError(f"Only a moderator can {action} members")
        if action == "ban":
            if target == actor:
                raise PermissionDeniedError("You cannot ban yourself")
            if await is_moderator(db, forum_id, target):
                raise PermissionDeniedError("Moderators cannot be banned")
    else:
        target = actor

    await get_user(db, target)
    membership = await get_membership(db, forum_id, target)
    current = membership.state if membership else NON_MEMBER
    new_state = next_state(action, current, forum.type)

    now = datetime.now(timezone.utc)
    if new_state == NON_MEMBER:
        if membership is not None:
            await db.delete(membership)
    elif membership is None:
        db.add(ForumMembership(
            forum_id=forum_id,
            username=target,
            state=new_state,
            is_moderator=False,
            updated_at=now,
        ))
    else:
        membership.state = new_state
        membership.is_moderator = False
        membership.updated_at = now

    await db.flush()
    await bump_version(db, Forum, Forum.id == forum_id)
    logger.info("Forum %s: %s %s (%s -> %s)", forum_id, action, target, current, new_state)
    return forum
