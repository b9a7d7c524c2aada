"""Application errors and their HTTP rendering.

Learn: Services raise AppError subclasses — never HTTPException, never raw
driver errors. The handlers registered here turn them into one stable
payload shape:

    {
      "error": {
        "code": "NOT_FOUND",
        "message": "Post not found",
        "status": 404,
        "request_id": "...",
        "timestamp": "...",
        "details": {...}          # only when present
      }
    }

Unknown routes, request validation failures and unhandled exceptions use
the same shape, so clients only ever parse one error format.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

logger = structlog.get_logger("ignitor.errors")


class AppError(Exception):
    """Base application error with an HTTP status and a stable code."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class DatabaseError(AppError):
    status_code = 500
    code = "DATABASE_ERROR"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMITED"

    def __init__(self, message: str = "Too many requests, please try again later.", **kwargs):
        super().__init__(message, **kwargs)


class ValidationError(AppError):
    status_code = 422
    code = "VALIDATION_ERROR"


class ServiceUnavailableError(AppError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"


# ─── Payloads ───────────────────────────────────────────


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_payload(
    *,
    code: str,
    message: str,
    status: int,
    request_id: str,
    details: Any = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "status": status,
            "request_id": request_id,
            "timestamp": now_iso(),
        }
    }
    if details is not None:
        payload["error"]["details"] = jsonable_encoder(details)
    return payload


def request_id_of(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get(
        "X-Request-ID", "-"
    )


def error_response(
    request: Request,
    *,
    status: int,
    code: str,
    message: str,
    details: Any = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=error_payload(
            code=code,
            message=message,
            status=status,
            request_id=request_id_of(request),
            details=details,
        ),
        headers=headers,
    )


# ─── Handlers ───────────────────────────────────────────

_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}


def register_exception_handlers(app: FastAPI, *, production: bool = False) -> None:
    """Install the handlers that render every failure as an error payload."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "request.app_error",
            code=exc.code,
            status=exc.status_code,
            message=exc.message,
            path=request.url.path,
        )
        headers = {"Retry-After": "60"} if isinstance(exc, RateLimitError) else None
        return error_response(
            request,
            status=exc.status_code,
            code=exc.code,
            message=exc.message,
            details=exc.details,
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        logger.info("request.validation_failed", path=request.url.path, errors=len(exc.errors()))
        return error_response(
            request,
            status=422,
            code=ValidationError.code,
            message="Request validation failed",
            details=exc.errors(),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = f"Route {request.method} {request.url.path} not found"
        else:
            message = str(exc.detail)
        logger.info("request.http_error", status=exc.status_code, path=request.url.path)
        return error_response(
            request,
            status=exc.status_code,
            code=_STATUS_CODES.get(exc.status_code, "HTTP_ERROR"),
            message=message,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("request.unhandled_error", path=request.url.path)
        details = None if production else {"error": str(exc), "type": type(exc).__name__}
        return error_response(
            request,
            status=500,
            code=AppError.code,
            message="Internal server error",
            details=details,
        )
