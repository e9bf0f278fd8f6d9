"""
services/admin/router.py
Admin-only endpoints: dashboard statistics, user moderation,
all-bookings view, booking settlement and direct notifications.

Every mutation is logged with the acting admin's id.
"""

import logging
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from services.booking import service as booking_service
from services.notification.service import create_notification
from services.permission.service import get_permissions, serialize_permissions
from shared.exceptions import NotFoundError, ValidationError
from shared.middleware.auth import require_admin
from shared.models.models import (
    Booking,
    BookingStatus,
    Notification,
    PaymentStatus,
    Permission,
    User,
    UserCredential,
    UserRole,
)
from shared.schemas.schemas import (
    AdminDashboardResponse,
    AdminStats,
    AdminUserDetailResponse,
    BookingListResponse,
    BookingResponse,
    MessageResponse,
    NotificationCreate,
    NotificationResponse,
    PaginationMeta,
    RoleUpdateRequest,
    StatusUpdateRequest,
    UserListResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


# ── Helpers ────────────────────────────────────────────────────────────────────

async def _get_user_or_404(user_id: UUID, db: AsyncSession) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def _refuse_self(admin: User, user_id: UUID, message: str) -> None:
    if admin.id == user_id:
        raise ValidationError(message)


# ── Dashboard ──────────────────────────────────────────────────────────────────

@router.get("/dashboard", response_model=AdminDashboardResponse)
async def get_dashboard(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Platform totals plus the ten newest users and bookings."""
    total_users = await db.scalar(select(func.count(User.id)))
    active_users = await db.scalar(select(func.count(User.id)).where(User.is_active.is_(True)))
    admin_users = await db.scalar(select(func.count(User.id)).where(User.role == UserRole.ADMIN))
    total_bookings = await db.scalar(select(func.count(Booking.id)))
    total_notifications = await db.scalar(select(func.count(Notification.id)))

    by_status_rows = await db.execute(
        select(Booking.status, func.count(Booking.id)).group_by(Booking.status)
    )
    bookings_by_status = {s.value: 0 for s in BookingStatus}
    for booking_status, count in by_status_rows.all():
        bookings_by_status[BookingStatus(booking_status).value] = count

    revenue = await db.scalar(
        select(func.coalesce(func.sum(Booking.total_price), 0)).where(
            Booking.payment_status == PaymentStatus.COMPLETED
        )
    )

    recent_users = await db.execute(select(User).order_by(User.created_at.desc()).limit(10))
    recent_bookings = await db.execute(select(Booking).order_by(Booking.created_at.desc()).limit(10))

    return AdminDashboardResponse(
        stats=AdminStats(
            total_users=total_users or 0,
            active_users=active_users or 0,
            admin_users=admin_users or 0,
            total_bookings=total_bookings or 0,
            bookings_by_status=bookings_by_status,
            total_revenue=Decimal(str(revenue or 0)),
            total_notifications=total_notifications or 0,
        ),
        recent_users=[UserResponse.model_validate(u) for u in recent_users.scalars()],
        recent_bookings=[BookingResponse.model_validate(b) for b in recent_bookings.scalars()],
    )


# ── Users ──────────────────────────────────────────────────────────────────────

@router.get("/users", response_model=UserListResponse)
async def list_users(
    role: Optional[Literal["user", "admin"]] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=100, description="Name, email or mobile"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    conditions = []
    if role:
        conditions.append(User.role == UserRole(role))
    if is_active is not None:
        conditions.append(User.is_active.is_(is_active))
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(User.name.ilike(pattern), User.email.ilike(pattern), User.mobile.ilike(pattern))
        )

    total = await db.scalar(select(func.count(User.id)).where(*conditions))
    result = await db.execute(
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return UserListResponse(
        items=[UserResponse.model_validate(u) for u in result.scalars()],
        pagination=PaginationMeta.build(page, limit, total or 0),
    )


@router.get("/users/{user_id}", response_model=AdminUserDetailResponse)
async def get_user_detail(
    user_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await _get_user_or_404(user_id, db)
    bookings, _ = await booking_service.list_bookings(db, user_id=user.id, limit=10)
    permissions = await get_permissions(db, user.id)
    return AdminUserDetailResponse(
        user=UserResponse.model_validate(user),
        recent_bookings=[BookingResponse.model_validate(b) for b in bookings],
        permissions=serialize_permissions(permissions) if permissions else None,
    )


@router.put("/users/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: UUID,
    data: RoleUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await _get_user_or_404(user_id, db)
    if data.role != UserRole.ADMIN.value:
        _refuse_self(admin, user.id, "You cannot remove your own admin role")

    user.role = UserRole(data.role)
    await db.flush()
    logger.info(f"Admin {admin.id} set role of user {user.id} to {data.role}")
    return UserResponse.model_validate(user)


@router.put("/users/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: UUID,
    data: Optional[StatusUpdateRequest] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Sets is_active when given, otherwise toggles it."""
    user = await _get_user_or_404(user_id, db)
    target = data.is_active if data and data.is_active is not None else not user.is_active
    if not target:
        _refuse_self(admin, user.id, "You cannot deactivate your own account")

    user.is_active = target
    await db.flush()
    logger.info(
        f"Admin {admin.id} {'activated' if target else 'deactivated'} user {user.id}"
    )
    return UserResponse.model_validate(user)


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Removes the account with its credentials and permissions.
    Bookings and notifications are kept as history.
    """
    _refuse_self(admin, user_id, "You cannot delete your own account")
    user = await _get_user_or_404(user_id, db)

    await db.execute(delete(UserCredential).where(UserCredential.user_id == user.id))
    await db.execute(delete(Permission).where(Permission.user_id == user.id))
    await db.delete(user)
    await db.flush()

    logger.warning(f"Admin {admin.id} deleted user {user_id} ({user.email})")
    return MessageResponse(message="User deleted successfully")


# ── Bookings ───────────────────────────────────────────────────────────────────

@router.get("/bookings", response_model=BookingListResponse)
async def list_all_bookings(
    type: Optional[Literal["flight", "hotel", "train", "car-rental", "tour-package", "cruise"]] = Query(None),
    status_filter: Optional[Literal["pending", "confirmed", "cancelled", "completed", "refunded"]] = Query(
        None, alias="status"
    ),
    user_id: Optional[UUID] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    items, total = await booking_service.list_bookings(
        db, user_id=user_id, type=type, status=status_filter, page=page, limit=limit
    )
    return BookingListResponse(
        items=[BookingResponse.model_validate(b) for b in items],
        pagination=PaginationMeta.build(page, limit, total),
    )


@router.post("/bookings/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    booking = await booking_service.complete_booking(db, booking_id)
    logger.info(f"Admin {admin.id} completed booking {booking.booking_reference}")
    return BookingResponse.model_validate(booking)


@router.post("/bookings/{booking_id}/refund", response_model=BookingResponse)
async def refund_booking(
    booking_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    booking = await booking_service.refund_booking(db, booking_id)
    logger.info(f"Admin {admin.id} refunded booking {booking.booking_reference}")
    return BookingResponse.model_validate(booking)


# ── Notifications ──────────────────────────────────────────────────────────────

@router.post(
    "/users/{user_id}/notifications",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_notification(
    user_id: UUID,
    data: NotificationCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await _get_user_or_404(user_id, db)
    notification = await create_notification(db, user.id, **data.model_dump())
    logger.info(f"Admin {admin.id} sent '{data.type}' notification to user {user.id}")
    return NotificationResponse.model_validate(notification)
