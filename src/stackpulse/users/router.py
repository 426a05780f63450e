"""User router: all /api/v1/users/* endpoints.

Every successful mutation publishes the user's post-mutation snapshot on
``userUpdate``.
"""

from __future__ import annotations

from collections.abc import Awaitable

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.database import get_session
from stackpulse.db.models import User
from stackpulse.dependencies import get_event_bus
from stackpulse.errors import StackPulseError, http_error
from stackpulse.events.bus import UpdateEventBus
from stackpulse.events.publish import publish_user, publish_user_deleted
from stackpulse.events.schemas import ChangeType, UserSnapshot
from stackpulse.events.snapshots import user_snapshot
from stackpulse.gamification.badge_service import add_badges, add_banners
from stackpulse.gamification.streak_service import get_streak
from stackpulse.gamification.trigger_engine import run_rewards
from stackpulse.qa.service import count_votes_cast
from stackpulse.users.schemas import (
    BadgesRequest,
    BannersRequest,
    BiographyRequest,
    EmailAddRequest,
    EmailReplaceRequest,
    FrequencyRequest,
    PinnedBadgeRequest,
    SelectedBannerRequest,
    StreakUpdateRequest,
    StreakUpdateResponse,
    SubscriptionRequest,
    UserCreateRequest,
    VoteCountResponse,
)
from stackpulse.users.service import (
    add_email,
    create_user,
    delete_user,
    get_user,
    list_users,
    replace_email,
    set_email_frequency,
    set_pinned_badge,
    set_selected_banner,
    toggle_subscription,
    update_biography,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


async def _apply(
    db: AsyncSession,
    bus: UpdateEventBus,
    username: str,
    mutation: Awaitable[object],
    change: ChangeType = "updated",
) -> UserSnapshot:
    """Run a profile mutation, commit it and publish the new snapshot."""
    try:
        await mutation
    except (StackPulseError, ValueError) as e:
        raise http_error(e) from e
    await db.commit()
    return await publish_user(db, bus, username, change)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.post("", response_model=UserSnapshot, status_code=201)
async def create_user_endpoint(
    body: UserCreateRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> UserSnapshot:
    snapshot = await _apply(
        db,
        bus,
        body.username,
        create_user(db, body.username, biography=body.biography, emails=[str(e) for e in body.emails]),
        change="created",
    )
    logger.info("user_created", username=body.username)
    return snapshot


@router.get("", response_model=list[UserSnapshot])
async def list_users_endpoint(
    db: AsyncSession = Depends(get_session),
) -> list[UserSnapshot]:
    users: list[User] = await list_users(db)
    return [await user_snapshot(db, u.username) for u in users]


@router.get("/{username}", response_model=UserSnapshot)
async def get_user_endpoint(
    username: str,
    db: AsyncSession = Depends(get_session),
) -> UserSnapshot:
    try:
        return await user_snapshot(db, username)
    except StackPulseError as e:
        raise http_error(e) from e


@router.delete("/{username}", status_code=200)
async def delete_user_endpoint(
    username: str,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> dict[str, str]:
    try:
        snapshot = await user_snapshot(db, username)
        await delete_user(db, username)
    except StackPulseError as e:
        raise http_error(e) from e
    await db.commit()
    publish_user_deleted(bus, snapshot.model_copy(update={"version": snapshot.version + 1}))
    logger.info("user_deleted", username=username)
    return {"detail": "User deleted"}


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.patch("/{username}/biography", response_model=UserSnapshot)
async def update_biography_endpoint(
    username: str,
    body: BiographyRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> UserSnapshot:
    return await _apply(db, bus, username, update_biography(db, username, body.biography))


@router.post("/{username}/emails", response_model=UserSnapshot)
async def add_email_endpoint(
    username: str,
    body: EmailAddRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> UserSnapshot:
    return await _apply(db, bus, username, add_email(db, username, str(body.email)))


@router.patch("/{username}/emails", response_model=UserSnapshot)
async def replace_email_endpoint(
    username: str,
    body: EmailReplaceRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> UserSnapshot:
    return await _apply(db, bus, username, replace_email(db, username, str(body.current), str(body.new)))


@router.put("/{username}/pinned-badge", response_model=UserSnapshot)
async def pinned_badge_endpoint(
    username: str,
    body: PinnedBadgeRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> UserSnapshot:
    return await _apply(db, bus, username, set_pinned_badge(db, username, body.badge))


@router.put("/{username}/selected-banner", response_model=UserSnapshot)
async def selected_banner_endpoint(
    username: str,
    body: SelectedBannerRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> UserSnapshot:
    return await _apply(db, bus, username, set_selected_banner(db, username, body.banner))


@router.patch("/{username}/subscription", response_model=UserSnapshot)
async def subscription_endpoint(
    username: str,
    body: SubscriptionRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> UserSnapshot:
    """Toggle the browser or email notification subscription."""
    return await _apply(db, bus, username, toggle_subscription(db, username, body.kind))


@router.patch("/{username}/email-frequency", response_model=UserSnapshot)
async def email_frequency_endpoint(
    username: str,
    body: FrequencyRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> UserSnapshot:
    return await _apply(db, bus, username, set_email_frequency(db, username, body.frequency))


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------


@router.post("/{username}/badges", response_model=UserSnapshot)
async def add_badges_endpoint(
    username: str,
    body: BadgesRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> UserSnapshot:
    """Add badges explicitly. Already-owned badges are rejected with 400."""
    return await _apply(db, bus, username, add_badges(db, username, body.badges))


@router.post("/{username}/banners", response_model=UserSnapshot)
async def add_banners_endpoint(
    username: str,
    body: BannersRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> UserSnapshot:
    """Add banners explicitly. Already-owned banners are rejected with 400."""
    return await _apply(db, bus, username, add_banners(db, username, body.banners))


@router.post("/{username}/streak", response_model=StreakUpdateResponse)
async def update_streak_endpoint(
    username: str,
    body: StreakUpdateRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> StreakUpdateResponse:
    """Record a qualifying activity, update the streak and evaluate badges."""
    try:
        await get_user(db, username)
    except StackPulseError as e:
        raise http_error(e) from e
    awarded = await run_rewards(db, bus, username, body.activity, body.timestamp)
    return StreakUpdateResponse(
        username=username,
        streak=await get_streak(db, username),
        awarded=awarded,
    )


@router.get("/{username}/vote-count", response_model=VoteCountResponse)
async def vote_count_endpoint(
    username: str,
    db: AsyncSession = Depends(get_session),
) -> VoteCountResponse:
    """Number of questions the user has currently up- or down-voted."""
    return VoteCountResponse(username=username, votes=await count_votes_cast(db, username))
