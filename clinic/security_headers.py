"""
Security headers for the clinic API

The API only serves JSON, so the content policy forbids loading anything and
only the dashboard origin may frame it. Responses under the patient and
appointment routes carry no-store: they contain personal health data.
"""

from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .config import ENVIRONMENT, FRONTEND_URL

NO_STORE = "no-store, no-cache, must-revalidate"
PERSONAL_DATA_PREFIXES = ("/api/patients", "/api/appointments", "/api/notifications")

DISABLED_FEATURES = ("accelerometer", "camera", "geolocation", "gyroscope", "microphone", "payment", "usb")


def build_security_headers(frontend_url: str = FRONTEND_URL, production: bool = ENVIRONMENT == "production") -> dict:
    """Headers added to every response outside the excluded paths"""
    headers = {
        "X-Frame-Options": "SAMEORIGIN",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Content-Security-Policy": (
            f"default-src 'none'; frame-ancestors 'self' {frontend_url}; base-uri 'none'; form-action 'none'"
        ),
        "Permissions-Policy": ", ".join(f"{feature}=()" for feature in DISABLED_FEATURES),
        "X-Permitted-Cross-Domain-Policies": "none",
    }
    if production:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"
    return headers


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, exclude_paths: Optional[list[str]] = None, headers: Optional[dict] = None):
        super().__init__(app)
        self.exclude_paths = tuple(exclude_paths or ())
        self.headers = headers or build_security_headers()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        path = request.url.path
        if path.startswith(self.exclude_paths):
            return response

        response.headers.update(self.headers)
        if path.startswith(PERSONAL_DATA_PREFIXES):
            response.headers["Cache-Control"] = NO_STORE
        return response
