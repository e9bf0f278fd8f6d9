"""
services/auth/router.py
Password authentication endpoints.
Implements: Register → Login → Forgot password (OTP) → Verify OTP → Reset password
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.auth import service
from services.auth.otp_delivery import OTPSender, get_otp_sender
from shared.middleware.auth import get_current_user
from shared.middleware.rate_limit import auth_limiter, otp_limiter, password_reset_limiter
from shared.models.models import User
from shared.schemas.schemas import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    OTPSentResponse,
    OTPVerifiedResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
    VerifyOTPRequest,
)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_limiter)],
    summary="Create an account and sign in",
)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    user, token = await service.register(db, payload)
    return AuthResponse(token=token, user=UserResponse.model_validate(user))


@router.post(
    "/login",
    response_model=AuthResponse,
    dependencies=[Depends(auth_limiter)],
    summary="Sign in with email and password",
)
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    401 for unknown email or wrong password, 423 while the account is locked,
    403 for a deactivated account.
    """
    user, token = await service.login(db, payload.email, payload.password)
    return AuthResponse(token=token, user=UserResponse.model_validate(user))


@router.post(
    "/forgot-password",
    response_model=OTPSentResponse,
    dependencies=[Depends(password_reset_limiter)],
    summary="Send a password reset OTP",
)
async def forgot_password(
    payload: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    sender: OTPSender = Depends(get_otp_sender),
):
    await service.forgot_password(db, sender, payload.contact, payload.contact_type)
    return OTPSentResponse()


@router.post(
    "/verify-otp",
    response_model=OTPVerifiedResponse,
    dependencies=[Depends(otp_limiter)],
    summary="Verify a password reset OTP",
)
async def verify_otp(
    payload: VerifyOTPRequest,
    db: AsyncSession = Depends(get_db),
):
    await service.verify_otp(db, payload.contact, payload.contact_type, payload.otp)
    return OTPVerifiedResponse()


@router.post(
    "/reset-password",
    response_model=AuthResponse,
    summary="Set a new password after OTP verification",
)
async def reset_password(
    payload: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
):
    user, token = await service.reset_password(
        db, payload.contact, payload.contact_type, payload.new_password
    )
    return AuthResponse(token=token, user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse, summary="Current user profile")
async def get_me(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)
