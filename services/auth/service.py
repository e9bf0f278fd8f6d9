"""
services/auth/service.py
Registration, password login with lockout, and the OTP password-reset flow.

OTP lifecycle:
    forgot_password  → code hash stored, expires in OTP_EXPIRE_MINUTES
    verify_otp       → code cleared, reset window opened for OTP_RESET_WINDOW_MINUTES
    reset_password   → requires an open window; new hash stored, window closed
"""

import logging
import math
from datetime import timedelta
from typing import Optional, Tuple

from pybreaker import CircuitBreakerError
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import utcnow
from config.settings import settings
from services.auth.otp_delivery import OTPSender
from services.notification.service import create_notification
from shared.exceptions import (
    AuthError,
    ConflictError,
    DeactivatedError,
    ExpiredError,
    InvalidCodeError,
    LockedError,
    NotFoundError,
    ValidationError,
)
from shared.models.models import (
    Gender,
    NotificationPriority,
    NotificationType,
    User,
    UserCredential,
    UserRole,
)
from shared.schemas.schemas import RegisterRequest
from shared.utils.security import (
    create_access_token,
    generate_otp,
    hash_password,
    hash_token,
    verify_otp_hash,
    verify_password,
)

logger = logging.getLogger(__name__)


# ── Lookups ───────────────────────────────────────────────────

async def get_user_by_contact(
    db: AsyncSession, contact: str, contact_type: str
) -> Optional[User]:
    if contact_type == "email":
        condition = User.email == contact.strip().lower()
    else:
        condition = User.mobile == contact.strip()
    result = await db.execute(select(User).where(condition))
    return result.scalar_one_or_none()


async def get_credentials(db: AsyncSession, user: User) -> UserCredential:
    credential = await db.get(UserCredential, user.id)
    if credential is None:
        # Profile rows always get a credential row; a gap means data corruption
        raise RuntimeError(f"Missing credentials for user {user.id}")
    return credential


# ── Registration ──────────────────────────────────────────────

async def create_user(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    mobile: str,
    password: str,
    gender: str = "",
    address: Optional[dict] = None,
    role: UserRole = UserRole.USER,
) -> User:
    """Insert profile + credential rows. Raises ConflictError on duplicate email/mobile."""
    email = email.strip().lower()
    mobile = mobile.strip()

    existing = await db.execute(
        select(User.id).where(or_(User.email == email, User.mobile == mobile))
    )
    if existing.first():
        raise ConflictError("User already exists with this email or mobile number")

    user = User(
        name=name.strip(),
        email=email,
        mobile=mobile,
        gender=Gender(gender or ""),
        role=role,
    )
    if address is not None:
        user.address = address

    try:
        async with db.begin_nested():
            db.add(user)
            await db.flush()
            db.add(UserCredential(
                user_id=user.id,
                password_hash=hash_password(password),
                login_attempts=0,
                password_changed_at=utcnow(),
            ))
            await db.flush()
    except IntegrityError:
        # Lost a race with a concurrent registration
        raise ConflictError("User already exists with this email or mobile number")

    return user


async def register(db: AsyncSession, payload: RegisterRequest) -> Tuple[User, str]:
    user = await create_user(
        db,
        name=payload.name,
        email=payload.email,
        mobile=payload.mobile,
        password=payload.password,
        gender=payload.gender,
        address=payload.address.model_dump(),
    )
    logger.info(f"New user registered: {user.id}")
    return user, create_access_token(user.id)


# ── Login ─────────────────────────────────────────────────────

async def login(db: AsyncSession, email: str, password: str) -> Tuple[User, str]:
    """
    Order of checks: unknown user, lock, deactivated, password.
    A locked account is reported as locked whatever password was sent.
    """
    user = await get_user_by_contact(db, email, "email")
    if not user:
        raise AuthError("Invalid credentials")

    credential = await get_credentials(db, user)
    now = utcnow()

    if credential.is_locked(now):
        remaining = math.ceil((credential.lock_until - now).total_seconds() / 60)
        raise LockedError(remaining)

    if not user.is_active:
        raise DeactivatedError()

    if not verify_password(password, credential.password_hash):
        _register_failed_attempt(credential, now)
        # Persist the counter before the request session rolls back on the error
        await db.commit()
        logger.warning(
            f"[SECURITY] Failed login attempt for user: {user.email} "
            f"(attempt {credential.login_attempts})"
        )
        if credential.lock_until is not None and credential.lock_until > now:
            logger.warning(f"[SECURITY] Account locked until {credential.lock_until}: {user.email}")
        raise AuthError("Invalid credentials")

    credential.login_attempts = 0
    credential.lock_until = None
    credential.last_login = now
    await db.flush()

    return user, create_access_token(user.id)


def _register_failed_attempt(credential: UserCredential, now) -> None:
    if credential.lock_until is not None and credential.lock_until <= now:
        # Previous lock has run out: start counting again
        credential.login_attempts = 1
        credential.lock_until = None
        return

    credential.login_attempts += 1
    if credential.login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
        credential.lock_until = now + timedelta(hours=settings.ACCOUNT_LOCK_HOURS)


# ── OTP / password reset ──────────────────────────────────────

async def forgot_password(
    db: AsyncSession,
    sender: OTPSender,
    contact: str,
    contact_type: str,
) -> None:
    """
    Issue a fresh code. Unknown contacts get the same response as known ones.
    A second request simply overwrites the first code.
    """
    user = await get_user_by_contact(db, contact, contact_type)
    if not user:
        logger.info(f"Password reset requested for unknown {contact_type}")
        return

    credential = await get_credentials(db, user)
    code = generate_otp()
    credential.otp_code_hash = hash_token(code)
    credential.otp_expires_at = utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
    credential.otp_verified_until = None
    await db.flush()

    try:
        await sender.send(contact, contact_type, code, "password-reset")
    except CircuitBreakerError:
        raise
    except Exception as e:
        # The caller always gets the same answer; delivery problems only reach the log
        logger.error(f"OTP delivery to {contact_type} failed for user {user.id}: {e}")


async def verify_otp(db: AsyncSession, contact: str, contact_type: str, otp: str) -> User:
    user = await get_user_by_contact(db, contact, contact_type)
    if not user:
        raise NotFoundError("User not found")

    credential = await get_credentials(db, user)
    if not credential.otp_code_hash or credential.otp_expires_at is None:
        raise InvalidCodeError("No OTP found. Please request a new one.")

    now = utcnow()
    if now > credential.otp_expires_at:
        raise ExpiredError("OTP has expired. Please request a new one.")

    if not verify_otp_hash(otp.strip(), credential.otp_code_hash):
        raise InvalidCodeError("Invalid OTP")

    # Single use: the code is gone, the reset window is open
    credential.otp_code_hash = None
    credential.otp_expires_at = None
    credential.otp_verified_until = now + timedelta(minutes=settings.OTP_RESET_WINDOW_MINUTES)
    await db.flush()
    return user


async def reset_password(
    db: AsyncSession, contact: str, contact_type: str, new_password: str
) -> Tuple[User, str]:
    user = await get_user_by_contact(db, contact, contact_type)
    if not user:
        raise NotFoundError("User not found")

    credential = await get_credentials(db, user)
    now = utcnow()
    if credential.otp_verified_until is None or credential.otp_verified_until < now:
        raise InvalidCodeError("OTP verification required")

    _apply_new_password(credential, new_password, now)
    credential.otp_verified_until = None
    await db.flush()

    await _notify_password_changed(db, user)
    logger.info(f"Password reset via OTP for user {user.id}")
    return user, create_access_token(user.id)


async def change_password(
    db: AsyncSession, user: User, current_password: str, new_password: str
) -> None:
    credential = await get_credentials(db, user)
    if not verify_password(current_password, credential.password_hash):
        raise ValidationError(
            "Current password is incorrect",
            errors=[{"field": "current_password", "message": "Current password is incorrect"}],
        )

    _apply_new_password(credential, new_password, utcnow())
    await db.flush()
    await _notify_password_changed(db, user)
    logger.info(f"Password changed for user {user.id}")


def _apply_new_password(credential: UserCredential, new_password: str, now) -> None:
    credential.password_hash = hash_password(new_password)
    credential.password_changed_at = now
    credential.login_attempts = 0
    credential.lock_until = None


async def _notify_password_changed(db: AsyncSession, user: User) -> None:
    await create_notification(
        db,
        user.id,
        type=NotificationType.PASSWORD_CHANGED,
        title="Password changed",
        message="Your password was changed. If this wasn't you, contact support immediately.",
        priority=NotificationPriority.HIGH,
        action_url="/settings",
    )
