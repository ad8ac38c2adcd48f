"""
Per-request correlation id and duration.

Every response carries ``X-Request-ID`` (echoed from the client or freshly
generated) and ``X-Request-Duration-Ms``. Slow requests log a warning and
5xx responses log an error; everything else is DEBUG. Health checks are
never logged.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Load balancers and department dashboards hit these continuously
_QUIET_PATHS = frozenset({"/api/v1/health/ready", "/api/v1/health/live"})

SLOW_REQUEST_MS = 1000


def _log_level_for(status_code: int, duration_ms: float) -> tuple[int, str]:
    if duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING, "Slow request"
    if status_code >= 500:
        return logging.ERROR, "Server error"
    return logging.DEBUG, "Request"


def init_request_timing(app: Flask):
    @app.before_request
    def _begin():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        g.request_started = time.perf_counter()

    @app.after_request
    def _finish(response):
        started = getattr(g, "request_started", None)
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"

        if request.path not in _QUIET_PATHS:
            level, label = _log_level_for(response.status_code, elapsed_ms)
            logger.log(
                level, "%s: %s %s %d (%.0fms)", label,
                request.method, request.path, response.status_code, elapsed_ms,
                extra={
                    "method": request.method,
                    "path": request.path,
                    "status": response.status_code,
                    "duration_ms": elapsed_ms,
                    "remote_addr": request.remote_addr,
                    "request_id": g.request_id,
                },
            )
        return response
