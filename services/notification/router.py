"""
services/notification/router.py
In-app notification endpoints for the signed-in user.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from services.notification import service
from shared.middleware.auth import get_current_user
from shared.models.models import User
from shared.schemas.schemas import (
    MarkAllReadResponse,
    MessageResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationTypeLiteral,
    PaginationMeta,
    UnreadCountResponse,
)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_my_notifications(
    read: Optional[bool] = Query(None, description="Filter by read state"),
    type: Optional[NotificationTypeLiteral] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Newest first; expired notifications are hidden."""
    items, total = await service.list_notifications(
        db, current_user.id, read=read, type=type, page=page, limit=limit
    )
    unread = await service.unread_count(db, current_user.id)
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in items],
        unread_count=unread,
        pagination=PaginationMeta.build(page, limit, total),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCountResponse(unread_count=await service.unread_count(db, current_user.id))


@router.put("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await service.mark_all_read(db, current_user.id)
    return MarkAllReadResponse(updated_count=updated)


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    notification = await service.mark_read(db, current_user.id, notification_id)
    return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await service.delete_notification(db, current_user.id, notification_id)
    return MessageResponse(message="Notification deleted successfully")
