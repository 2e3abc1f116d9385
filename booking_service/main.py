import asyncio
import logging

import redis.asyncio as redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import config
from .admin_routes import router as admin_router
from .auth_routes import router as auth_router
from .db import get_engine, get_session
from .errors import BookingError
from .expiry_worker import expiry_loop
from .identity import ensure_bootstrap_admin
from .logging_context import configure_logging
from .middleware import RateLimitMiddleware, RequestLoggingMiddleware
from .notifier import WebhookNotifier
from .payments import SimulatedProcessor
from .routes import router
from .session import utc_now
from .store import BookingStore

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "System", "description": "Operational endpoints."},
    {"name": "Bookings", "description": "Service catalogue and the confirmed booking calendar."},
    {"name": "Reservations", "description": "Time-boxed reservation sessions and payment."},
    {"name": "Auth", "description": "Sign-up, sign-in and session endpoints."},
    {"name": "Admin", "description": "Operator endpoints; admin role required."},
]


def _validation_fields(exc: RequestValidationError) -> dict:
    fields = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        fields[".".join(loc) or "body"] = err.get("msg", "invalid")
    return fields


def create_app(
    *,
    store: BookingStore | None = None,
    redis_client=None,
    payment_adapter=None,
    notifier: WebhookNotifier | None = None,
    clock=utc_now,
    rate_limit_per_minute: int = config.RATE_LIMIT_PER_MINUTE,
) -> FastAPI:
    """
    Build the service. Collaborators passed in are used as-is; anything left
    out is created from the environment at startup.
    """
    app = FastAPI(title="Booking Service", openapi_tags=OPENAPI_TAGS)

    app.add_middleware(RateLimitMiddleware, max_per_minute=rate_limit_per_minute)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(router)
    app.include_router(auth_router)
    app.include_router(admin_router)

    app.state.store = store
    app.state.redis = redis_client
    app.state.payment_adapter = payment_adapter or SimulatedProcessor(config.PAYMENT_DECLINE_RATE)
    app.state.notifier = notifier or WebhookNotifier(
        config.NOTIFY_WEBHOOK_URL, timeout=config.NOTIFY_TIMEOUT_SECONDS
    )
    app.state.clock = clock

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error": "validation_error",
                "detail": "Missing or malformed fields",
                "fields": _validation_fields(exc),
            },
        )

    @app.get("/health", tags=["System"])
    async def health():
        return {
            "status": "ok",
            "service": "booking-service",
            "notifications_enabled": app.state.notifier.enabled,
            "auth_enabled": bool(config.JWT_SECRET),
        }

    _engine = None
    _owns_redis = False
    _stop_event = asyncio.Event()
    _expiry_task = None

    @app.on_event("startup")
    async def startup():
        nonlocal _engine, _owns_redis, _expiry_task
        configure_logging(config.LOG_LEVEL)

        if app.state.store is None:
            _engine = get_engine(config.DATABASE_URL)
            app.state.store = BookingStore(get_session(_engine))

        if app.state.redis is None:
            if not config.REDIS_URL:
                raise RuntimeError("REDIS_URL environment variable is not set")
            app.state.redis = redis.from_url(config.REDIS_URL, decode_responses=True)
            _owns_redis = True

        if not config.JWT_SECRET:
            logger.warning("JWT_SECRET not set; auth and admin routes will answer 503")
        if not app.state.notifier.enabled:
            logger.info("NOTIFY_WEBHOOK_URL not set; booking notifications disabled")

        await ensure_bootstrap_admin(
            app.state.store.session,
            config.BOOTSTRAP_ADMIN_EMAIL,
            config.BOOTSTRAP_ADMIN_PASSWORD,
        )

        _expiry_task = asyncio.create_task(expiry_loop(app.state.redis, _stop_event, app.state.clock))

    @app.on_event("shutdown")
    async def shutdown():
        _stop_event.set()
        if _expiry_task:
            await _expiry_task
        if _engine is not None:
            await _engine.dispose()
        if _owns_redis:
            await app.state.redis.aclose()

    return app


app = create_app()
