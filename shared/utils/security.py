"""
shared/utils/security.py
JWT creation/verification, password hashing, OTP codes and booking references.
"""

import hashlib
import hmac
import re
import secrets
import string
import time
from datetime import datetime, timedelta, timezone
from typing import List

from jose import JWTError, jwt
from passlib.context import CryptContext

from config.settings import settings
from shared.exceptions import AuthError

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


# ── JWT ───────────────────────────────────────────────────────

def create_access_token(user_id) -> str:
    """Create a signed JWT access token for the given user id."""
    now = datetime.now(timezone.utc)
    expire = now + timedelta(days=settings.JWT_ACCESS_TOKEN_EXPIRE_DAYS)

    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_access_token(token: str) -> str:
    """
    Decode and verify a JWT access token.
    Returns the user id (sub claim). Raises AuthError on any problem:
    bad signature, expired, wrong type, missing subject.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        raise AuthError("Not authorized, token failed")

    if payload.get("type") != "access" or not payload.get("sub"):
        raise AuthError("Not authorized, token failed")
    return payload["sub"]


# ── Password ──────────────────────────────────────────────────

PASSWORD_MIN_LENGTH = 8


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def check_password_strength(password: str) -> List[str]:
    """Returns the list of policy violations; empty means acceptable."""
    problems = []
    if len(password) < PASSWORD_MIN_LENGTH:
        problems.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if not re.search(r"[a-z]", password):
        problems.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        problems.append("Password must contain at least one uppercase letter")
    if not re.search(r"[0-9]", password):
        problems.append("Password must contain at least one number")
    if not re.search(r"[^a-zA-Z0-9]", password):
        problems.append("Password must contain at least one special character")
    return problems


# ── OTP ───────────────────────────────────────────────────────

def generate_otp(length: int = None) -> str:
    """Numeric code with no leading zero (100000-999999 for the default length)."""
    length = length or settings.OTP_LENGTH
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


def hash_token(token: str) -> str:
    """SHA-256 hash for storing short-lived codes."""
    return hashlib.sha256(token.encode()).hexdigest()


def verify_otp_hash(candidate: str, stored_hash: str) -> bool:
    return hmac.compare_digest(hash_token(candidate), stored_hash)


# ── Booking reference ─────────────────────────────────────────

_BASE36 = string.digits + string.ascii_uppercase


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_booking_reference() -> str:
    """BK + base36(ms timestamp) + 6 random base36 chars, all uppercase."""
    timestamp = to_base36(int(time.time() * 1000))
    random_part = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"BK{timestamp}{random_part}"
