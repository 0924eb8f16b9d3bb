from __future__ import annotations

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from classshift.core.config import Settings
from classshift.core.exceptions import PayloadTooLargeError, error_payload


def build_security_headers(settings: Settings) -> dict[str, str]:
    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "no-referrer",
        "Cache-Control": "no-store",
    }
    if settings.security_enable_hsts:
        headers["Strict-Transport-Security"] = f"max-age={max(1, settings.security_hsts_max_age_seconds)}"
    return headers


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp fixed security headers on every API response.

    Responses carry per-user request and notification data, so nothing is cacheable.
    """

    def __init__(self, app, *, settings: Settings) -> None:
        super().__init__(app)
        self._headers = build_security_headers(settings)

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for name, value in self._headers.items():
            response.headers.setdefault(name, value)
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, max_bytes: int) -> None:
        super().__init__(app)
        self._max_bytes = max(1, max_bytes)

    async def dispatch(self, request: Request, call_next) -> Response:
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self._max_bytes:
            exc = PayloadTooLargeError(int(declared), self._max_bytes)
            return JSONResponse(status_code=exc.status_code, content=error_payload(exc))
        return await call_next(request)
