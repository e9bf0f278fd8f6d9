"""
shared/models/models.py
All SQLAlchemy ORM models for the Culture Connect travel platform.
UUID primary keys throughout; JSON columns for nested profile/booking data.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from config.database import Base, UTCDateTime, utcnow
from shared.utils.security import generate_booking_reference


def _enum(enum_cls):
    """Persist enum values (e.g. "car-rental"), not member names."""
    return Enum(
        enum_cls,
        values_callable=lambda e: [m.value for m in e],
        native_enum=False,
        validate_strings=True,
        length=32,
    )


# ── Enumerations ──────────────────────────────────────────────

class UserRole(str, PyEnum):
    USER = "user"
    ADMIN = "admin"


class Gender(str, PyEnum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNSPECIFIED = ""


class BookingType(str, PyEnum):
    FLIGHT = "flight"
    HOTEL = "hotel"
    TRAIN = "train"
    CAR_RENTAL = "car-rental"
    TOUR_PACKAGE = "tour-package"
    CRUISE = "cruise"


class BookingStatus(str, PyEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class PaymentMethod(str, PyEnum):
    CREDIT_CARD = "credit-card"
    DEBIT_CARD = "debit-card"
    UPI = "upi"
    NET_BANKING = "net-banking"
    WALLET = "wallet"
    CASH = "cash"


class PaymentStatus(str, PyEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class RefundStatus(str, PyEnum):
    PENDING = "pending"
    PROCESSED = "processed"
    COMPLETED = "completed"


class NotificationType(str, PyEnum):
    BOOKING_CONFIRMATION = "booking-confirmation"
    BOOKING_CANCELLED = "booking-cancelled"
    BOOKING_REMINDER = "booking-reminder"
    PAYMENT_SUCCESS = "payment-success"
    PAYMENT_FAILED = "payment-failed"
    PASSWORD_CHANGED = "password-changed"
    PROFILE_UPDATED = "profile-updated"
    SYSTEM_UPDATE = "system-update"
    PROMOTION = "promotion"
    REMINDER = "reminder"
    ALERT = "alert"


class NotificationPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# ── Defaults for nested JSON columns ──────────────────────────

def default_address() -> dict:
    return {"street": "", "city": "", "state": "", "country": "", "zip_code": ""}


def default_preferences() -> dict:
    return {
        "language": "en",
        "currency": "INR",
        "theme": "dark",
        "notifications": {"email": True, "sms": False, "push": True},
    }


def default_travel_preferences() -> dict:
    return {
        "default_search_location": "",
        "preferred_airline": "",
        "seat_preference": "window",
        "meal_preference": "vegetarian",
        "baggage_preference": "standard",
        "class_preference": "economy",
    }


def _money(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# ── Mixins ────────────────────────────────────────────────────

class TimestampMixin:
    """Adds created_at and updated_at to any model."""
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False
    )


# ── Models ────────────────────────────────────────────────────

class User(TimestampMixin, Base):
    """Profile row. Secrets live in UserCredential."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    mobile: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    profile_picture: Mapped[str] = mapped_column(Text, default="", nullable=False)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    gender: Mapped[Gender] = mapped_column(
        _enum(Gender), default=Gender.UNSPECIFIED, nullable=False
    )
    address: Mapped[dict] = mapped_column(JSON, default=default_address, nullable=False)
    preferences: Mapped[dict] = mapped_column(JSON, default=default_preferences, nullable=False)
    travel_preferences: Mapped[dict] = mapped_column(
        JSON, default=default_travel_preferences, nullable=False
    )
    role: Mapped[UserRole] = mapped_column(
        _enum(UserRole), default=UserRole.USER, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_mobile_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (Index("ix_users_role", "role"),)

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"


class UserCredential(Base):
    """
    Password hash, OTP state and lockout counters for one user.
    Kept out of the profile row so secrets are only loaded by the auth paths.
    """
    __tablename__ = "user_credentials"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    otp_code_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    otp_expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    otp_verified_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    login_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lock_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.lock_until is not None and self.lock_until > now


class Booking(TimestampMixin, Base):
    """
    A travel booking of one of six types.
    Status transitions: pending → confirmed → completed,
    pending | confirmed → cancelled → refunded.
    total_price is derived; see calculate_total().
    """
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # No FK: bookings outlive a deleted account
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    type: Mapped[BookingType] = mapped_column(_enum(BookingType), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        _enum(BookingStatus), default=BookingStatus.PENDING, nullable=False
    )
    booking_reference: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    booking_details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    # Pricing
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    taxes: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    fees: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)

    # Payment (recorded only, never reconciled)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        _enum(PaymentMethod), nullable=True
    )
    payment_transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )

    # Cancellation
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refund_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    refund_status: Mapped[Optional[RefundStatus]] = mapped_column(
        _enum(RefundStatus), nullable=True
    )

    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)

    __table_args__ = (
        Index("ix_bookings_user_id", "user_id"),
        Index("ix_bookings_status", "status"),
        Index("ix_bookings_type", "type"),
        Index("ix_bookings_created_at", "created_at"),
    )

    def calculate_total(self) -> Decimal:
        """total = base + taxes + fees - discount. Client-sent totals never survive this."""
        self.total_price = (
            _money(self.base_price) + _money(self.taxes) + _money(self.fees) - _money(self.discount)
        )
        return self.total_price

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.COMPLETED


@event.listens_for(Booking, "before_insert")
def _booking_before_insert(mapper, connection, target: Booking) -> None:
    if not target.booking_reference:
        target.booking_reference = generate_booking_reference()
    target.calculate_total()


@event.listens_for(Booking, "before_update")
def _booking_before_update(mapper, connection, target: Booking) -> None:
    target.calculate_total()


class Notification(TimestampMixin, Base):
    """In-app notification. Rows with expires_at in the past are hidden and later purged."""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    booking_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)  # weak reference
    type: Mapped[NotificationType] = mapped_column(_enum(NotificationType), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    priority: Mapped[NotificationPriority] = mapped_column(
        _enum(NotificationPriority), default=NotificationPriority.MEDIUM, nullable=False
    )
    action_url: Mapped[str] = mapped_column(Text, default="", nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        Index("ix_notifications_user_id_read", "user_id", "read"),
        Index("ix_notifications_user_id_created_at", "user_id", "created_at"),
        Index("ix_notifications_type", "type"),
        Index("ix_notifications_expires_at", "expires_at"),
    )

    def mark_read(self) -> bool:
        """Returns True if the row changed."""
        if self.read:
            return False
        self.read = True
        self.read_at = utcnow()
        return True


class Permission(TimestampMixin, Base):
    """
    One row per user. Each category is an (enabled, granted_at) pair;
    location also carries the last known position.
    """
    __tablename__ = "permissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    # Location
    location_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    location_granted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    location_address: Mapped[str] = mapped_column(Text, default="", nullable=False)
    location_city: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    location_state: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    location_country: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    location_zip_code: Mapped[str] = mapped_column(String(20), default="", nullable=False)
    location_updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # Contact
    contact_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    contact_share_with_partners: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    contact_granted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # Camera
    camera_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    camera_granted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # Notifications
    push_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    push_granted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=True
    )
    email_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_granted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=True
    )
    sms_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sms_granted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # Storage
    storage_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    storage_granted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=True
    )

    # Analytics
    analytics_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    analytics_granted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    def clear_location(self) -> None:
        self.latitude = None
        self.longitude = None
        self.location_address = ""
        self.location_city = ""
        self.location_state = ""
        self.location_country = ""
        self.location_zip_code = ""
        self.location_updated_at = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None
