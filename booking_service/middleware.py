import json
import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from .logging_context import reset_request_id, set_request_id

access_logger = logging.getLogger("booking_service.access")
logger = logging.getLogger(__name__)

_EXEMPT_PATHS = ("/docs", "/openapi.json", "/health")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = set_request_id(request_id)

        start = time.perf_counter()
        try:
            try:
                response: Response = await call_next(request)
            except Exception:
                duration_ms = (time.perf_counter() - start) * 1000
                access_logger.error(json.dumps({
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status": 500,
                    "duration_ms": round(duration_ms, 2),
                }))
                raise

            duration_ms = (time.perf_counter() - start) * 1000
            response.headers["X-Request-Id"] = request_id

            access_logger.info(json.dumps({
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "user_sub": getattr(request.state, "user_sub", None),
                "user_role": getattr(request.state, "user_role", None),
            }))
            return response
        finally:
            reset_request_id(token)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_per_minute: int = 120):
        super().__init__(app)
        self.max_per_minute = max_per_minute

    async def dispatch(self, request: Request, call_next):
        if self.max_per_minute <= 0:
            return await call_next(request)
        if request.url.path in _EXEMPT_PATHS or request.url.path.startswith("/docs/"):
            return await call_next(request)

        redis_client = getattr(request.app.state, "redis", None)
        if redis_client is None:
            return await call_next(request)

        ip = request.client.host if request.client else "unknown"
        epoch_minute = int(time.time() // 60)
        key = f"rl:ip:{ip}:{epoch_minute}"

        count = await redis_client.incr(key)
        if count == 1:
            await redis_client.expire(key, 70)

        if count > self.max_per_minute:
            logger.warning("rate limit exceeded ip=%s path=%s", ip, request.url.path)
            return JSONResponse(
                status_code=429,
                content={"error": "rate_limited", "detail": "Too many requests"},
            )

        return await call_next(request)
