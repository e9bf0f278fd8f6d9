"""
services/auth/otp_delivery.py
Delivers one-time codes by email (Resend) or SMS (Twilio).
The console backend only logs the code and is meant for local development.

Provider SDKs are blocking, so they run in the threadpool behind a circuit
breaker; a tripped breaker surfaces as CircuitBreakerError (HTTP 503).
"""

import logging
from typing import Protocol

from pybreaker import CircuitBreaker, CircuitBreakerListener
from starlette.concurrency import run_in_threadpool

from config.settings import settings

logger = logging.getLogger(__name__)


class OTPSender(Protocol):
    async def send(self, contact: str, contact_type: str, code: str, purpose: str) -> None:
        ...


class _BreakerLogListener(CircuitBreakerListener):
    def state_change(self, cb, old_state, new_state):
        logger.warning(
            f"OTP delivery circuit breaker '{cb.name}' changed from "
            f"{old_state.name if old_state else None} to {new_state.name}"
        )


otp_breaker = CircuitBreaker(
    fail_max=settings.OTP_DELIVERY_FAIL_MAX,
    reset_timeout=settings.OTP_DELIVERY_RESET_TIMEOUT,
    listeners=[_BreakerLogListener()],
    name="otp-delivery",
)


def _subject(purpose: str) -> str:
    if purpose == "password-reset":
        return "Your password reset code"
    return "Your verification code"


def _message(code: str, purpose: str) -> str:
    return (
        f"{settings.EMAIL_FROM_NAME}: your {purpose.replace('-', ' ')} code is {code}. "
        f"It expires in {settings.OTP_EXPIRE_MINUTES} minutes."
    )


# ── Backends ──────────────────────────────────────────────────

class ConsoleOTPSender:
    """Development stand-in: writes the code to the log."""

    async def send(self, contact: str, contact_type: str, code: str, purpose: str) -> None:
        logger.info(
            f"OTP ({purpose}) for {contact_type} {contact}: {code} "
            f"(expires in {settings.OTP_EXPIRE_MINUTES} minutes)"
        )


class ProviderOTPSender:
    """Email via Resend, SMS via Twilio."""

    def _send_email(self, to_email: str, code: str, purpose: str) -> None:
        import resend
        resend.api_key = settings.RESEND_API_KEY
        resend.Emails.send({
            "from": f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>",
            "to": [to_email],
            "subject": _subject(purpose),
            "html": f"""
            <div style="font-family: sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2 style="color: #333;">{_subject(purpose)}</h2>
                <p style="font-size: 28px; letter-spacing: 6px;"><strong>{code}</strong></p>
                <p style="color: #666;">This code will expire in {settings.OTP_EXPIRE_MINUTES} minutes.</p>
                <p style="color: #999; font-size: 12px;">
                    If you didn't request this code, please ignore this email.
                </p>
            </div>
            """,
        })

    def _send_sms(self, phone_number: str, code: str, purpose: str) -> None:
        from twilio.rest import Client
        client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        client.messages.create(
            body=_message(code, purpose),
            from_=settings.TWILIO_FROM_NUMBER,
            to=phone_number,
        )

    async def send(self, contact: str, contact_type: str, code: str, purpose: str) -> None:
        if contact_type == "email":
            await run_in_threadpool(otp_breaker.call, self._send_email, contact, code, purpose)
        else:
            await run_in_threadpool(otp_breaker.call, self._send_sms, contact, code, purpose)


def get_otp_sender() -> OTPSender:
    """FastAPI dependency; tests override it to capture codes."""
    if settings.OTP_DELIVERY_BACKEND in ("resend", "twilio"):
        return ProviderOTPSender()
    return ConsoleOTPSender()
