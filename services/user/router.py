"""
services/user/router.py
Profile management for the signed-in user.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.auth.service import change_password
from shared.exceptions import ConflictError
from shared.middleware.auth import get_current_user
from shared.models.models import Gender, User
from shared.schemas.schemas import (
    ChangePasswordRequest,
    MessageResponse,
    ProfileUpdateRequest,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profile", tags=["Profile"])


@router.get("", response_model=UserResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    """Return the currently authenticated user's profile."""
    return UserResponse.model_validate(current_user)


@router.put("", response_model=UserResponse)
async def update_profile(
    data: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Only fields present in the request body are updated.
    Nested objects (address, preferences, travel_preferences) are replaced whole.
    """
    updates = data.model_dump(exclude_unset=True)
    if not updates:
        return UserResponse.model_validate(current_user)

    if updates.get("email"):
        updates["email"] = updates["email"].strip().lower()
    if updates.get("mobile"):
        updates["mobile"] = updates["mobile"].strip()

    # Email / mobile uniqueness check
    clashes = []
    if updates.get("email") and updates["email"] != current_user.email:
        clashes.append(User.email == updates["email"])
    if updates.get("mobile") and updates["mobile"] != current_user.mobile:
        clashes.append(User.mobile == updates["mobile"])
    if clashes:
        existing = await db.execute(
            select(User.id).where(or_(*clashes), User.id != current_user.id)
        )
        if existing.first():
            raise ConflictError("Email or mobile number already in use")

    if "gender" in updates:
        updates["gender"] = Gender(updates["gender"] or "")

    try:
        async with db.begin_nested():
            for field, value in updates.items():
                if value is None and field not in ("date_of_birth",):
                    continue
                setattr(current_user, field, value)
            await db.flush()
    except IntegrityError:
        # Lost a race with another update or registration
        raise ConflictError("Email or mobile number already in use")

    logger.info(f"Profile updated for user {current_user.id}: {sorted(updates)}")
    return UserResponse.model_validate(current_user)


@router.put("/password", response_model=MessageResponse)
async def update_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Current password must match; the new one must satisfy the password policy."""
    await change_password(db, current_user, data.current_password, data.new_password)
    return MessageResponse(message="Password updated successfully")
