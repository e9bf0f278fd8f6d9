"""
shared/middleware/auth.py
FastAPI dependency functions for authentication and authorization.
Every failure to resolve a bearer token to a live, active user raises the
same AuthError so callers cannot tell which part was wrong.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.exceptions import AuthError, ForbiddenError
from shared.models.models import User, UserRole
from shared.utils.security import verify_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Validate the bearer token and load the User row it names."""
    if not credentials:
        raise AuthError("Not authorized, no token")

    subject = verify_access_token(credentials.credentials)
    try:
        user_id = uuid.UUID(subject)
    except ValueError:
        raise AuthError("Not authorized, token failed")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    # Deleted and deactivated accounts look exactly like a bad token
    if not user or not user.is_active:
        raise AuthError("Not authorized, token failed")

    request.state.user_id = str(user.id)
    return user


class RoleRequired:
    """Dependency factory for role-based access control."""

    def __init__(self, *roles: UserRole):
        self.roles = roles

    async def __call__(
        self,
        request: Request,
        current_user: User = Depends(get_current_user),
    ) -> User:
        if current_user.role not in self.roles:
            logger.warning(
                "[SECURITY] Unauthorized admin access attempt by user %s (%s) on %s %s",
                current_user.id,
                current_user.email,
                request.method,
                request.url.path,
            )
            raise ForbiddenError("Access denied. Admin privileges required.")
        return current_user


require_admin = RoleRequired(UserRole.ADMIN)


# ── Request context ───────────────────────────────────────────

@dataclass
class RequestContext:
    """Per-request values handed explicitly to services instead of globals."""
    user: User
    locale: str
    request_id: Optional[str]


def _negotiate_locale(user: User, accept_language: Optional[str]) -> str:
    preferred = (user.preferences or {}).get("language")
    if preferred:
        return preferred
    if accept_language:
        # "hi-IN,hi;q=0.9,en;q=0.8" -> "hi"
        first = accept_language.split(",")[0].strip()
        if first:
            return first.split(";")[0].split("-")[0].lower()
    return "en"


async def get_request_context(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> RequestContext:
    return RequestContext(
        user=current_user,
        locale=_negotiate_locale(current_user, request.headers.get("accept-language")),
        request_id=getattr(request.state, "request_id", None),
    )
