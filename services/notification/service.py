"""
services/notification/service.py
Per-user notification ledger: create, list, count, mark read, purge.
The list and the unread count share one visibility filter so they never disagree.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import utcnow
from shared.exceptions import NotFoundError
from shared.models.models import Notification, NotificationPriority, NotificationType

logger = logging.getLogger(__name__)


def _visible_filter(user_id: uuid.UUID, now: datetime):
    """Rows owned by the user that have not expired."""
    return (
        Notification.user_id == user_id,
        or_(Notification.expires_at.is_(None), Notification.expires_at > now),
    )


async def create_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    type: NotificationType,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    booking_id: Optional[uuid.UUID] = None,
    priority: NotificationPriority = NotificationPriority.MEDIUM,
    action_url: str = "",
    expires_at: Optional[datetime] = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=NotificationType(type),
        title=title,
        message=message,
        data=data or {},
        booking_id=booking_id,
        priority=NotificationPriority(priority),
        action_url=action_url or "",
        expires_at=expires_at,
    )
    db.add(notification)
    await db.flush()
    return notification


async def list_notifications(
    db: AsyncSession,
    user_id: uuid.UUID,
    read: Optional[bool] = None,
    type: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Notification], int]:
    """Newest first. Returns (page of rows, total matching)."""
    conditions = list(_visible_filter(user_id, utcnow()))
    if read is not None:
        conditions.append(Notification.read == read)
    if type:
        conditions.append(Notification.type == NotificationType(type))

    total = await db.scalar(select(func.count(Notification.id)).where(*conditions))
    result = await db.execute(
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars()), total or 0


async def unread_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    count = await db.scalar(
        select(func.count(Notification.id)).where(
            *_visible_filter(user_id, utcnow()),
            Notification.read.is_(False),
        )
    )
    return count or 0


async def get_notification(
    db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> Notification:
    """Another user's notification, or an expired one, is indistinguishable from a missing one."""
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            *_visible_filter(user_id, utcnow()),
        )
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise NotFoundError("Notification not found")
    return notification


async def mark_read(
    db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> Notification:
    notification = await get_notification(db, user_id, notification_id)
    if notification.mark_read():
        await db.flush()
    return notification


async def mark_all_read(db: AsyncSession, user_id: uuid.UUID) -> int:
    """Idempotent: a second call updates nothing and returns 0."""
    result = await db.execute(
        update(Notification)
        .where(*_visible_filter(user_id, utcnow()), Notification.read.is_(False))
        .values(read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def delete_notification(
    db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> None:
    notification = await get_notification(db, user_id, notification_id)
    await db.delete(notification)
    await db.flush()


def expired_notifications_stmt(now: datetime):
    """DELETE for every notification whose expiry has passed. Shared with the Celery purge."""
    return (
        delete(Notification)
        .where(Notification.expires_at.is_not(None), Notification.expires_at <= now)
        .execution_options(synchronize_session=False)
    )


async def purge_expired(db: AsyncSession, now: Optional[datetime] = None) -> int:
    result = await db.execute(expired_notifications_stmt(now or utcnow()))
    purged = result.rowcount or 0
    if purged:
        logger.info(f"Purged {purged} expired notifications")
    return purged
