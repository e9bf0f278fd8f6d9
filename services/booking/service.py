"""
services/booking/service.py
Booking lifecycle.

States:  pending → confirmed → completed
         pending | confirmed → cancelled → refunded
completed and refunded are terminal.

The booking row is committed first; its notification follows in a separate
commit, so a crash in between leaves a booking without a notification.
"""

import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from config.database import utcnow
from services.notification.service import create_notification
from shared.exceptions import ConflictError, InvalidStateError, NotFoundError
from shared.models.models import (
    Booking,
    BookingStatus,
    BookingType,
    NotificationPriority,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    RefundStatus,
    User,
    UserRole,
)
from shared.schemas.schemas import BookingUpdateRequest, PricingIn
from shared.utils.security import generate_booking_reference

logger = logging.getLogger(__name__)

TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.CANCELLED: {BookingStatus.REFUNDED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.REFUNDED: set(),
}

TYPE_LABELS = {
    BookingType.FLIGHT: "Flight",
    BookingType.HOTEL: "Hotel",
    BookingType.TRAIN: "Train",
    BookingType.CAR_RENTAL: "Car rental",
    BookingType.TOUR_PACKAGE: "Tour package",
    BookingType.CRUISE: "Cruise",
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in TRANSITIONS[BookingStatus(current)]


def _transition(booking: Booking, target: BookingStatus) -> None:
    if not can_transition(booking.status, target):
        raise InvalidStateError(
            f"Cannot change booking from '{BookingStatus(booking.status).value}' "
            f"to '{target.value}'"
        )
    booking.status = target


def _apply_pricing(booking: Booking, pricing: PricingIn) -> None:
    booking.base_price = pricing.base_price
    booking.taxes = pricing.taxes
    booking.fees = pricing.fees
    booking.discount = pricing.discount
    booking.currency = pricing.currency.upper()
    booking.calculate_total()


# ── Create ────────────────────────────────────────────────────

async def _insert_booking(
    db: AsyncSession,
    user_id: uuid.UUID,
    payload,
    reference: str,
) -> Booking:
    taken = await db.scalar(select(Booking.id).where(Booking.booking_reference == reference))
    if taken:
        raise ConflictError(f"Booking reference {reference} already exists")

    booking = Booking(
        user_id=user_id,
        type=BookingType(payload.type),
        status=BookingStatus.PENDING,
        booking_reference=reference,
        booking_details=payload.booking_details.model_dump(mode="json", by_alias=True),
        payment_status=PaymentStatus.PENDING,
        notes=payload.notes or "",
    )
    _apply_pricing(booking, payload.pricing)

    try:
        async with db.begin_nested():
            db.add(booking)
            await db.flush()
    except IntegrityError:
        raise ConflictError(f"Booking reference {reference} already exists")
    return booking


async def create_booking(db: AsyncSession, user: User, payload) -> Booking:
    """
    Insert a pending booking. A reference collision gets one retry with a
    freshly generated reference, then surfaces as ConflictError.
    """
    booking = None
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(2),
        retry=retry_if_exception_type(ConflictError),
        reraise=True,
    ):
        with attempt:
            if attempt.retry_state.attempt_number == 1 and payload.booking_reference:
                reference = payload.booking_reference.upper()
            else:
                reference = generate_booking_reference()
            booking = await _insert_booking(db, user.id, payload, reference)

    await db.commit()
    logger.info(f"Booking {booking.booking_reference} created for user {user.id}")

    label = TYPE_LABELS[BookingType(booking.type)]
    await _notify(
        db,
        booking,
        NotificationType.BOOKING_CONFIRMATION,
        title="Booking received",
        message=(
            f"Your {label.lower()} booking {booking.booking_reference} has been created "
            f"for {booking.currency} {booking.total_price}."
        ),
    )
    return booking


# ── Read ──────────────────────────────────────────────────────

async def get_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    result = await db.execute(select(Booking).where(Booking.id == booking_id))
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


async def get_booking_for_user(db: AsyncSession, user: User, booking_id: uuid.UUID) -> Booking:
    """Admins see every booking; other users only their own (others look missing)."""
    booking = await get_booking(db, booking_id)
    if booking.user_id != user.id and user.role != UserRole.ADMIN:
        raise NotFoundError("Booking not found")
    return booking


async def get_booking_by_reference(db: AsyncSession, user: User, reference: str) -> Booking:
    result = await db.execute(
        select(Booking).where(Booking.booking_reference == reference.upper())
    )
    booking = result.scalar_one_or_none()
    if not booking or (booking.user_id != user.id and user.role != UserRole.ADMIN):
        raise NotFoundError("Booking not found")
    return booking


async def list_bookings(
    db: AsyncSession,
    user_id: Optional[uuid.UUID] = None,
    type: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Booking], int]:
    """Newest first. user_id=None lists every user's bookings (admin)."""
    conditions = []
    if user_id is not None:
        conditions.append(Booking.user_id == user_id)
    if type:
        conditions.append(Booking.type == BookingType(type))
    if status:
        conditions.append(Booking.status == BookingStatus(status))

    total = await db.scalar(select(func.count(Booking.id)).where(*conditions))
    result = await db.execute(
        select(Booking)
        .where(*conditions)
        .order_by(Booking.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars()), total or 0


# ── Mutations ─────────────────────────────────────────────────

async def update_booking(
    db: AsyncSession, user: User, booking_id: uuid.UUID, payload: BookingUpdateRequest
) -> Booking:
    """Notes and pricing may change while the booking is still pending."""
    booking = await get_booking_for_user(db, user, booking_id)
    if booking.status != BookingStatus.PENDING:
        raise InvalidStateError("Only pending bookings can be modified")

    if payload.notes is not None:
        booking.notes = payload.notes
    if payload.pricing is not None:
        _apply_pricing(booking, payload.pricing)
    await db.flush()
    return booking


async def confirm_booking(
    db: AsyncSession,
    user: User,
    booking_id: uuid.UUID,
    payment_method: str,
    transaction_id: Optional[str] = None,
) -> Booking:
    """Record the payment and move pending → confirmed. Payment is never verified."""
    booking = await get_booking_for_user(db, user, booking_id)
    _transition(booking, BookingStatus.CONFIRMED)
    booking.payment_method = PaymentMethod(payment_method)
    booking.payment_transaction_id = transaction_id
    booking.payment_status = PaymentStatus.COMPLETED
    booking.paid_at = utcnow()
    await db.flush()
    await db.commit()

    logger.info(f"Booking {booking.booking_reference} confirmed ({payment_method})")
    await _notify(
        db,
        booking,
        NotificationType.PAYMENT_SUCCESS,
        title="Payment successful",
        message=(
            f"Payment of {booking.currency} {booking.total_price} received. "
            f"Booking {booking.booking_reference} is confirmed."
        ),
        priority=NotificationPriority.HIGH,
    )
    return booking


async def cancel_booking(
    db: AsyncSession, user: User, booking_id: uuid.UUID, reason: Optional[str] = None
) -> Booking:
    """
    pending | confirmed → cancelled. A paid booking is refundable in full;
    an unpaid one records a zero refund.
    """
    booking = await get_booking_for_user(db, user, booking_id)
    _transition(booking, BookingStatus.CANCELLED)
    booking.cancelled_at = utcnow()
    booking.cancellation_reason = reason or ""
    booking.refund_amount = booking.total_price if booking.is_paid else Decimal("0")
    booking.refund_status = RefundStatus.PENDING
    await db.flush()
    await db.commit()

    logger.info(f"Booking {booking.booking_reference} cancelled by user {user.id}")
    await _notify(
        db,
        booking,
        NotificationType.BOOKING_CANCELLED,
        title="Booking cancelled",
        message=(
            f"Booking {booking.booking_reference} has been cancelled. "
            f"Refund amount: {booking.currency} {booking.refund_amount}."
        ),
    )
    return booking


async def complete_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    booking = await get_booking(db, booking_id)
    _transition(booking, BookingStatus.COMPLETED)
    await db.flush()
    logger.info(f"Booking {booking.booking_reference} completed")
    return booking


async def refund_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    """cancelled → refunded; marks the refund and the payment as settled."""
    booking = await get_booking(db, booking_id)
    _transition(booking, BookingStatus.REFUNDED)
    booking.refund_status = RefundStatus.COMPLETED
    if booking.is_paid:
        booking.payment_status = PaymentStatus.REFUNDED
    await db.flush()
    logger.info(f"Booking {booking.booking_reference} refunded ({booking.refund_amount})")
    return booking


# ── Notifications ─────────────────────────────────────────────

async def _notify(
    db: AsyncSession,
    booking: Booking,
    type: NotificationType,
    title: str,
    message: str,
    priority: NotificationPriority = NotificationPriority.MEDIUM,
) -> None:
    """Best effort: a failed notification never undoes the booking change."""
    try:
        async with db.begin_nested():
            await create_notification(
                db,
                booking.user_id,
                type=type,
                title=title,
                message=message,
                data={
                    "booking_reference": booking.booking_reference,
                    "status": BookingStatus(booking.status).value,
                },
                booking_id=booking.id,
                priority=priority,
                action_url=f"/bookings/{booking.id}",
            )
    except SQLAlchemyError:
        logger.exception(f"Failed to create notification for booking {booking.booking_reference}")
