"""
services/permission/router.py
Per-user permission toggles (location, contact, camera, notifications, storage, analytics).
"""

from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.permission import service
from shared.middleware.auth import get_current_user
from shared.models.models import User
from shared.schemas.schemas import (
    ContactPermissionUpdate,
    LocationPermissionUpdate,
    NotificationPermissionUpdate,
    PermissionsResponse,
    TogglePermissionUpdate,
)

router = APIRouter(prefix="/api/permissions", tags=["Permissions"])


@router.get("", response_model=PermissionsResponse)
async def get_my_permissions(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Created with defaults on first access."""
    record, _ = await service.ensure_permissions(db, current_user.id)
    return service.serialize_permissions(record)


@router.put("/location", response_model=PermissionsResponse)
async def update_location_permission(
    payload: LocationPermissionUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    record = await service.update_location_permission(db, current_user.id, payload)
    return service.serialize_permissions(record)


@router.put("/contact", response_model=PermissionsResponse)
async def update_contact_permission(
    payload: ContactPermissionUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    record = await service.update_contact_permission(db, current_user.id, payload)
    return service.serialize_permissions(record)


@router.put("/notifications", response_model=PermissionsResponse)
async def update_notification_permissions(
    payload: NotificationPermissionUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    record = await service.update_notification_permissions(db, current_user.id, payload)
    return service.serialize_permissions(record)


@router.put("/{category}", response_model=PermissionsResponse)
async def update_simple_permission(
    category: Literal["camera", "storage", "analytics"],
    payload: TogglePermissionUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    record = await service.update_simple_permission(db, current_user.id, category, payload.enabled)
    return service.serialize_permissions(record)
