"""Notification API endpoints: 3 routes."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.database import get_session
from stackpulse.dependencies import get_event_bus
from stackpulse.errors import StackPulseError, http_error
from stackpulse.events.bus import UpdateEventBus
from stackpulse.events.publish import publish_notification
from stackpulse.events.schemas import NotificationSnapshot
from stackpulse.events.snapshots import notification_snapshot
from stackpulse.notifications.schemas import NotificationCreateRequest
from stackpulse.notifications.service import create_notification, get_notifications, mark_as_read
from stackpulse.users.service import get_user

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.post("", response_model=NotificationSnapshot, status_code=201)
async def create_notification_endpoint(
    body: NotificationCreateRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> NotificationSnapshot:
    """Create a notification for a user and broadcast it."""
    try:
        await get_user(db, body.target_user)
        notification = await create_notification(
            db,
            target_user=body.target_user,
            title=body.title,
            text=body.text,
            kind=body.kind,
        )
    except (StackPulseError, ValueError) as e:
        raise http_error(e) from e
    await db.commit()
    publish_notification(bus, notification, "created")
    return notification_snapshot(notification)


@router.get("/{username}", response_model=list[NotificationSnapshot])
async def list_notifications(
    username: str,
    unread_only: bool = Query(False),
    db: AsyncSession = Depends(get_session),
) -> list[NotificationSnapshot]:
    """List a user's notifications, newest first."""
    notifications = await get_notifications(db, username, unread_only=unread_only)
    return [notification_snapshot(n) for n in notifications]


@router.patch("/{notification_id}/read", response_model=NotificationSnapshot)
async def mark_notification_read(
    notification_id: int,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> NotificationSnapshot:
    """Mark a notification as read. The read receipt goes to its owner only."""
    try:
        notification = await mark_as_read(db, notification_id)
    except StackPulseError as e:
        raise http_error(e) from e
    await db.commit()
    publish_notification(bus, notification, "read")
    logger.info("notification_read", notification_id=notification_id, username=notification.target_user)
    return notification_snapshot(notification)
