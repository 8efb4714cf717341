"""Security headers middleware for FastAPI.

Adds recommended security headers to all responses. HSTS and the strict
Content-Security-Policy are only sent outside debug mode.
"""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from campus.core.config import get_settings

API_CSP = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"
# Swagger UI loads its assets from a CDN
DOCS_CSP = "default-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net data:"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers; configured by debug vs production mode."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        settings = get_settings()

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"

        if settings.debug:
            response.headers["Content-Security-Policy"] = DOCS_CSP
        else:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
            response.headers["Content-Security-Policy"] = API_CSP

        return response
