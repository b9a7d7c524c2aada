"""Rate limiting middleware — Redis-based fixed window.

Learn: Each client IP gets a counter key like "ignitor:rl:{ip}:{window}"
where window = now // window_seconds. The first hit in a window sets a TTL
so keys clean themselves up. Health checks are never limited.

Gracefully skips rate limiting if Redis is unavailable (e.g., in tests).
"""

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ignitor.errors import RateLimitError, error_response

SKIP_PATHS = ("/health", "/api/v1/health")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per window."""

    def __init__(self, app, max_requests: int = 100, window_seconds: int = 900):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        # Try to get Redis — skip rate limiting if unavailable
        try:
            from ignitor.redis_client import get_redis

            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        window = int(time.time() // self.window_seconds)
        key = f"ignitor:rl:{client_ip}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, self.window_seconds * 2)
        except Exception:
            # Redis error — don't block the request
            return await call_next(request)

        if count > self.max_requests:
            exc = RateLimitError()
            return error_response(
                request,
                status=exc.status_code,
                code=exc.code,
                message=exc.message,
                headers={"Retry-After": str(self.window_seconds)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.max_requests - count))
        return response
