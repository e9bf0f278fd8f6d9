"""
main.py
FastAPI application entry point.
Registers all routers, middleware, exception handlers, startup/shutdown events.

- Structured JSON logging with request correlation ids
- Per-IP rate limiting for unauthenticated traffic (Redis, fails open)
- Domain errors mapped to a single JSON error shape
- Prometheus metrics at /metrics
"""

import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from logging import LogRecord

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from pybreaker import CircuitBreakerError
from redis.exceptions import RedisError

from config.database import close_db, init_db
from config.redis_client import close_redis, init_redis
from config.settings import settings
from shared.exceptions import AppError

# Service routers
from services.admin.router import router as admin_router
from services.auth.router import router as auth_router
from services.booking.router import router as booking_router
from services.location.router import router as location_router
from services.notification.router import router as notification_router
from services.permission.router import router as permission_router
from services.user.router import router as profile_router


# ── Logging ──────────────────────────────────────────────────

class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "instance": os.getenv("INSTANCE_NAME", "unknown"),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)


# ── Lifespan (startup/shutdown) ───────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle handler."""
    logger.info(f"Starting {settings.APP_NAME} ({settings.APP_ENV})")

    await init_db()
    logger.info("Database connected")

    try:
        await init_redis()
    except RedisError as e:
        # Rate limiting fails open; the API still serves requests
        logger.error(f"Redis unavailable, continuing without it: {e}")

    await seed_admin()

    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} is ready")
    yield

    await close_redis()
    await close_db()
    logger.info("Server shutdown complete")


# ── Error responses ───────────────────────────────────────────

def _error_response(request: Request, status_code: int, body: dict, headers: dict = None) -> JSONResponse:
    body["request_id"] = getattr(request.state, "request_id", None)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return _error_response(request, exc.status_code, exc.to_dict(), exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Report every invalid field at once, as a 400."""
        errors = []
        for err in exc.errors():
            loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
            errors.append({"field": ".".join(loc) or "body", "message": err.get("msg", "Invalid value")})
        return _error_response(
            request,
            400,
            {"detail": "Validation failed", "code": "ValidationError", "errors": errors},
        )

    @app.exception_handler(CircuitBreakerError)
    async def circuit_open_handler(request: Request, exc: CircuitBreakerError):
        logger.error(
            f"[{getattr(request.state, 'request_id', None)}] "
            f"Service degraded - Circuit breaker open: {exc}"
        )
        return _error_response(
            request,
            503,
            {
                "detail": "Service temporarily unavailable. Please try again later.",
                "code": "ServiceUnavailable",
            },
            {"Retry-After": str(settings.OTP_DELIVERY_RESET_TIMEOUT)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler. Never expose stack traces in production."""
        request_id = getattr(request.state, "request_id", None)
        logger.error(f"[{request_id}] Unhandled exception: {exc}", exc_info=True)
        detail = str(exc) if settings.DEBUG else "An internal server error occurred"
        return _error_response(request, 500, {"detail": detail, "code": "InternalError"})


# ── App Factory ───────────────────────────────────────────────

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## Culture Connect Travel API

REST API behind the Culture Connect travel-booking site:
- **Auth**: email/password + JWT (7 days), OTP password reset, account lockout
- **Bookings**: flights, hotels, trains, car rentals, tour packages, cruises
- **Notifications**: per-user in-app notification ledger
- **Permissions**: location, contact, camera, notifications, storage, analytics
- **Admin**: dashboard, user moderation, booking settlement

### Authentication
All protected endpoints require `Authorization: Bearer <token>` header.
Get a token from `/api/auth/register` or `/api/auth/login`.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware (last added runs outermost) ─────────────────────
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=["*"])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)

    # ── Custom Middleware ──────────────────────────────────────────

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        """
        Unauthenticated callers: RATE_LIMIT_UNAUTH_PER_MINUTE per IP.
        Authenticated traffic and health/metrics are not limited here.
        """
        skip_paths = {"/health", "/docs", "/redoc", "/openapi.json", "/metrics"}
        if request.url.path in skip_paths:
            return await call_next(request)

        try:
            from config.redis_client import RedisCache, get_optional_redis
            client = get_optional_redis()
            auth_header = request.headers.get("Authorization", "")
            if client and not auth_header.startswith("Bearer "):
                client_ip = request.client.host if request.client else "unknown"
                allowed = await RedisCache(client).check_rate_limit(
                    f"rate:unauth:{client_ip}", settings.RATE_LIMIT_UNAUTH_PER_MINUTE, 60
                )
                if not allowed:
                    logger.warning(f"Rate limit exceeded for IP {client_ip}")
                    return _error_response(
                        request,
                        429,
                        {"detail": "Too many requests. Please slow down.", "code": "RateLimitedError"},
                        {"Retry-After": "60"},
                    )
        except RedisError as e:
            # Don't fail requests if Redis is down - fail open
            logger.error(f"Rate limit check failed: {e}")

        return await call_next(request)

    @app.middleware("http")
    async def process_time_middleware(request: Request, call_next):
        """Track and expose request processing time."""
        start = time.perf_counter()
        response = await call_next(request)
        process_time = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Process-Time"] = f"{process_time}ms"
        return response

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add unique X-Request-ID to every request for log correlation."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    register_exception_handlers(app)

    # ── Routes ────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def health_check():
        from sqlalchemy import text
        from sqlalchemy.exc import SQLAlchemyError

        from config.database import AsyncSessionLocal
        from config.redis_client import redis_client

        checks = {"status": "ok", "version": settings.APP_VERSION}

        try:
            async with AsyncSessionLocal() as session:
                await session.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except SQLAlchemyError:
            checks["database"] = "error"
            checks["status"] = "degraded"

        if redis_client is None:
            checks["redis"] = "disabled"
        else:
            try:
                await redis_client.ping()
                checks["redis"] = "ok"
            except RedisError:
                checks["redis"] = "error"
                checks["status"] = "degraded"

        status_code = 200 if checks["status"] == "ok" else 503
        return JSONResponse(content=checks, status_code=status_code)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    app.include_router(auth_router)
    app.include_router(profile_router)
    app.include_router(booking_router)
    app.include_router(notification_router)
    app.include_router(permission_router)
    app.include_router(location_router)
    app.include_router(admin_router)

    # ── Prometheus Metrics ─────────────────────────────────────────
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", tags=["Monitoring"])

    return app


# ── Seed ──────────────────────────────────────────────────────

async def seed_admin():
    """Create the configured admin account on first start."""
    if not (settings.SEED_ADMIN_EMAIL and settings.SEED_ADMIN_PASSWORD):
        return

    from sqlalchemy import select

    from config.database import get_db_context
    from services.auth.service import create_user
    from shared.models.models import User, UserRole

    async with get_db_context() as db:
        existing = await db.scalar(
            select(User.id).where(User.email == settings.SEED_ADMIN_EMAIL.lower())
        )
        if existing:
            return
        await create_user(
            db,
            name="Administrator",
            email=settings.SEED_ADMIN_EMAIL,
            mobile=settings.SEED_ADMIN_MOBILE,
            password=settings.SEED_ADMIN_PASSWORD,
            role=UserRole.ADMIN,
        )
        logger.info(f"Seeded admin account {settings.SEED_ADMIN_EMAIL}")


# ── Entry Point ───────────────────────────────────────────────

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
        log_level="debug" if settings.DEBUG else "info",
        access_log=True,
    )
