"""
services/permission/service.py
One permission record per user, created with defaults on first access.

Every category follows the same rule: enabling stamps granted_at, disabling
clears it. Disabling location also wipes the stored position; disabling
contact also withdraws partner sharing.
"""

import logging
import uuid
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import utcnow
from config.settings import settings
from shared.exceptions import ForbiddenError, NotFoundError, ValidationError
from shared.models.models import Permission
from shared.schemas.schemas import (
    ContactPermissionUpdate,
    LocationPermissionUpdate,
    NotificationPermissionUpdate,
    PermissionsResponse,
)

logger = logging.getLogger(__name__)

CATEGORIES = ("location", "contact", "camera", "notifications", "storage", "analytics")

# Categories with a single enabled/granted_at pair
SIMPLE_CATEGORIES = ("camera", "storage", "analytics")
NOTIFICATION_CHANNELS = ("push", "email", "sms")


async def get_permissions(db: AsyncSession, user_id: uuid.UUID) -> Optional[Permission]:
    result = await db.execute(select(Permission).where(Permission.user_id == user_id))
    return result.scalar_one_or_none()


async def ensure_permissions(db: AsyncSession, user_id: uuid.UUID) -> Tuple[Permission, bool]:
    """Return (record, created). Creates the default record on first access."""
    record = await get_permissions(db, user_id)
    if record:
        return record, False

    try:
        async with db.begin_nested():
            record = Permission(user_id=user_id)
            db.add(record)
            await db.flush()
    except IntegrityError:
        # A concurrent request created it first
        record = await get_permissions(db, user_id)
        if record is None:
            raise
        return record, False

    logger.info(f"Created default permissions for user {user_id}")
    return record, True


def has_permission(record: Permission, category: str) -> bool:
    """Notifications count as granted when either push or email is on."""
    if category == "notifications":
        return record.push_enabled or record.email_enabled
    if category not in CATEGORIES:
        return False
    return bool(getattr(record, f"{category}_enabled"))


def _set_enabled(record: Permission, prefix: str, enabled: bool) -> None:
    setattr(record, f"{prefix}_enabled", enabled)
    setattr(record, f"{prefix}_granted_at", utcnow() if enabled else None)


def _validate_coordinates(latitude: Optional[float], longitude: Optional[float]) -> None:
    errors = []
    if latitude is not None and not -90 <= latitude <= 90:
        errors.append({"field": "latitude", "message": "Latitude must be between -90 and 90"})
    if longitude is not None and not -180 <= longitude <= 180:
        errors.append({"field": "longitude", "message": "Longitude must be between -180 and 180"})
    if errors:
        raise ValidationError(errors=errors)


# ── Updates ───────────────────────────────────────────────────

def apply_location_toggle(record: Permission, enabled: bool) -> None:
    _set_enabled(record, "location", enabled)
    if not enabled:
        record.clear_location()


def apply_location_data(
    record: Permission,
    latitude: Optional[float],
    longitude: Optional[float],
    address: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    country: Optional[str] = None,
    zip_code: Optional[str] = None,
) -> None:
    """Merge the new fix into the stored one; omitted fields keep their value."""
    _validate_coordinates(latitude, longitude)
    if latitude is not None:
        record.latitude = latitude
    if longitude is not None:
        record.longitude = longitude
    for field, value in (
        ("location_address", address),
        ("location_city", city),
        ("location_state", state),
        ("location_country", country),
        ("location_zip_code", zip_code),
    ):
        if value is not None:
            setattr(record, field, value)
    record.location_updated_at = utcnow()


async def update_location_permission(
    db: AsyncSession, user_id: uuid.UUID, payload: LocationPermissionUpdate
) -> Permission:
    """
    Coordinates are only stored while the category is enabled; sending them
    together with enabled=false (or to a disabled category) is ignored.
    """
    record, _ = await ensure_permissions(db, user_id)
    if payload.enabled is not None:
        apply_location_toggle(record, payload.enabled)

    if record.location_enabled and (payload.latitude is not None or payload.longitude is not None):
        apply_location_data(
            record,
            payload.latitude,
            payload.longitude,
            address=payload.address,
            city=payload.city,
            state=payload.state,
            country=payload.country,
            zip_code=payload.zip_code,
        )
    await db.flush()
    return record


async def update_contact_permission(
    db: AsyncSession, user_id: uuid.UUID, payload: ContactPermissionUpdate
) -> Permission:
    record, _ = await ensure_permissions(db, user_id)
    if payload.enabled is not None:
        _set_enabled(record, "contact", payload.enabled)
        if not payload.enabled:
            record.contact_share_with_partners = False

    if payload.share_with_partners is not None:
        if payload.share_with_partners and not record.contact_enabled:
            raise ForbiddenError("Contact permission must be enabled to share with partners")
        record.contact_share_with_partners = payload.share_with_partners

    await db.flush()
    return record


async def update_simple_permission(
    db: AsyncSession, user_id: uuid.UUID, category: str, enabled: bool
) -> Permission:
    """camera, storage, analytics."""
    if category not in SIMPLE_CATEGORIES:
        raise NotFoundError(f"Unknown permission category: {category}")
    record, _ = await ensure_permissions(db, user_id)
    _set_enabled(record, category, enabled)
    await db.flush()
    return record


async def update_notification_permissions(
    db: AsyncSession, user_id: uuid.UUID, payload: NotificationPermissionUpdate
) -> Permission:
    record, _ = await ensure_permissions(db, user_id)
    for channel in NOTIFICATION_CHANNELS:
        value = getattr(payload, channel)
        if value is not None:
            _set_enabled(record, channel, value)
    await db.flush()
    return record


# ── Location (used by the location router) ────────────────────

async def update_current_location(db: AsyncSession, user_id: uuid.UUID, payload) -> Permission:
    """
    Store a new position. A disabled location category is switched on by the
    update when ALLOW_IMPLICIT_LOCATION_GRANT is set, otherwise refused.
    """
    _validate_coordinates(payload.latitude, payload.longitude)
    record, _ = await ensure_permissions(db, user_id)
    if not has_permission(record, "location"):
        if not settings.ALLOW_IMPLICIT_LOCATION_GRANT:
            raise ForbiddenError("Location permission not granted")
        logger.info(f"Location permission implicitly granted by update for user {user_id}")
        apply_location_toggle(record, True)

    apply_location_data(
        record,
        payload.latitude,
        payload.longitude,
        address=payload.address,
        city=payload.city,
        state=payload.state,
        country=payload.country,
        zip_code=payload.zip_code,
    )
    await db.flush()
    return record


async def get_current_location(db: AsyncSession, user_id: uuid.UUID) -> Permission:
    record, _ = await ensure_permissions(db, user_id)
    if not has_permission(record, "location"):
        raise ForbiddenError("Location permission not granted")
    if not record.has_coordinates:
        raise NotFoundError("Location not available")
    return record


# ── Serialization ─────────────────────────────────────────────

def _state(record: Permission, prefix: str) -> dict:
    return {
        "enabled": getattr(record, f"{prefix}_enabled"),
        "granted_at": getattr(record, f"{prefix}_granted_at"),
    }


def last_known_location(record: Permission) -> dict:
    return {
        "latitude": record.latitude,
        "longitude": record.longitude,
        "address": record.location_address,
        "city": record.location_city,
        "state": record.location_state,
        "country": record.location_country,
        "zip_code": record.location_zip_code,
        "updated_at": record.location_updated_at,
    }


def serialize_permissions(record: Permission) -> PermissionsResponse:
    return PermissionsResponse(
        location={**_state(record, "location"), "last_known_location": last_known_location(record)},
        contact={
            **_state(record, "contact"),
            "share_with_partners": record.contact_share_with_partners,
        },
        camera=_state(record, "camera"),
        notifications={channel: _state(record, channel) for channel in NOTIFICATION_CHANNELS},
        storage=_state(record, "storage"),
        analytics=_state(record, "analytics"),
    )
