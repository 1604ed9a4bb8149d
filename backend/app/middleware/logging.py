"""
ScreenShelf Backend - Request Logging Middleware
==================================================

What:  One access-log line per HTTP request.
How:   Measures wall time around the downstream app and logs method, path,
       status, duration, request ID and client IP to `screenshelf.access`.
       5xx logs at ERROR, 4xx at WARNING, everything else at INFO.
Who:   Applied to every request, inside RequestIDMiddleware.

Not logged: request bodies (uploaded images), form fields, headers.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var

logger = logging.getLogger("screenshelf.access")

# Probed every few seconds by orchestrators
QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Typical durations:
        GET /health:                   a few ms (plus provider probe)
        GET {prefix}/:                 10-50ms (one query)
        POST {prefix}/:                seconds (OCR + text generation dominate)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()

        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        method = request.method
        path = request.url.path
        rid = request_id_var.get("")

        if path in QUIET_PATHS:
            return await call_next(request)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )

        return response
