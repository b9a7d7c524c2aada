"""Request ID middleware — one ID per request, end to end.

Learn: The ID comes from the first tracing header the caller sent
(X-Request-ID, then X-Correlation-ID) or is a fresh UUID. It is:

- bound into structlog contextvars → every log line of the request has it
- stored on request.state → error payloads report it
- echoed back as X-Request-ID
"""

import uuid

import structlog
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

TRACE_HEADERS = ("X-Request-ID", "X-Correlation-ID")


def resolve_request_id(headers: Headers) -> str:
    for name in TRACE_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = resolve_request_id(request.headers)
        request.state.request_id = request_id

        # Fresh context per request; nothing leaks from the previous one
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
