"""Security headers middleware.

Learn: The header set is fixed per process, so it is built once in
__init__ and copied onto every response:

- nosniff / DENY / strict referrer / same-origin COOP and CORP everywhere
- Content-Security-Policy only in production (it breaks /docs in dev)
- Strict-Transport-Security only when the request came in over https
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

DEFAULT_CSP = "default-src 'self'; frame-ancestors 'none'; object-src 'none'"
HSTS = "max-age=31536000; includeSubDomains"

BASE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, production: bool = False, csp: str = DEFAULT_CSP):
        super().__init__(app)
        self.headers = dict(BASE_HEADERS)
        if production:
            self.headers["Content-Security-Policy"] = csp

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        response.headers.update(self.headers)
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = HSTS
        return response
