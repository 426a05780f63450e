"""Notification creation and delivery service.

Notifications are:
1. Persisted in the database
2. Broadcast on ``notificationUpdate`` when created
3. Flipped to read (never deleted), with the read receipt relayed to the owner only

Kinds: browser, email
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.db.models import Notification
from stackpulse.db.versioning import update_versioned
from stackpulse.errors import EntityNotFoundError
from stackpulse.events.bus import UpdateEventBus
from stackpulse.events.publish import publish_notification

logger = logging.getLogger(__name__)

VALID_KINDS = {"browser", "email"}


async def create_notification(
    db: AsyncSession,
    target_user: str,
    title: str,
    text: str = "",
    kind: str = "browser",
    metadata: dict[str, Any] | None = None,
) -> Notification:
    """Persist a notification. Flushes but does not commit."""
    if kind not in VALID_KINDS:
        raise ValueError(f"Invalid notification kind: {kind}. Must be one of {sorted(VALID_KINDS)}")

    notification = Notification(
        title=title,
        text=text,
        kind=kind,
        target_user=target_user,
        read=False,
        notification_metadata=metadata or {},
        created_at=datetime.now(timezone.utc),
        version=1,
    )
    db.add(notification)
    await db.flush()
    return notification


async def get_notifications(
    db: AsyncSession,
    username: str,
    unread_only: bool = False,
) -> list[Notification]:
    """List a user's notifications, newest first."""
    query = select(Notification).where(Notification.target_user == username)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(query.order_by(Notification.id.desc()))
    return list(result.scalars())


async def mark_as_read(db: AsyncSession, notification_id: int) -> Notification:
    """Mark one notification as read. Already-read notifications are left untouched."""
    notification = await db.get(Notification, notification_id)
    if notification is None:
        raise EntityNotFoundError(f"Notification not found: {notification_id}")
    await update_versioned(db, notification, lambda n: {} if n.read else {"read": True})
    return notification


async def notify(
    db: AsyncSession,
    bus: UpdateEventBus,
    target_user: str,
    title: str,
    text: str = "",
    kind: str = "browser",
    metadata: dict[str, Any] | None = None,
) -> Notification | None:
    """Create, commit and broadcast a side-effect notification.

    Failures are logged and rolled back; the caller's already-committed mutation is
    unaffected. Returns None when the notification could not be stored.
    """
    try:
        notification = await create_notification(db, target_user, title, text, kind, metadata)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.warning("Failed to create notification for %s", target_user, exc_info=True)
        return None

    publish_notification(bus, notification, "created")
    return notification
