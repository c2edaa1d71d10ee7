"""
InvoiceFlow - HTTP Middleware

Security headers and request logging.
"""

import logging
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    Headers:
    - X-Content-Type-Options
    - X-Frame-Options
    - Strict-Transport-Security (production only)
    - Referrer-Policy
    - Cache-Control on API responses
    """

    def __init__(self, app: FastAPI, development_mode: bool = False):
        super().__init__(app)
        self.development_mode = development_mode

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if not self.development_mode:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        if request.url.path.startswith("/api"):
            response.headers.setdefault("Cache-Control", "no-store")

        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log requests with status and timing.

    Auth endpoints and failed requests are always logged; everything else
    at DEBUG.
    """

    SENSITIVE_PATHS = [
        "/api/v1/auth",
    ]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path
        method = request.method

        response = await call_next(request)

        duration = time.perf_counter() - start_time

        if response.status_code >= 400:
            log_level = logging.WARNING
        elif any(path.startswith(p) for p in self.SENSITIVE_PATHS):
            log_level = logging.INFO
        else:
            log_level = logging.DEBUG

        logger.log(
            log_level,
            f"{method} {path} - {response.status_code} - {duration:.3f}s - {client_ip}",
            extra={
                "method": method,
                "path": path,
                "status": response.status_code,
                "duration": duration,
                "client_ip": client_ip,
                "user_agent": request.headers.get("User-Agent", "unknown")[:100],
            },
        )
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response
