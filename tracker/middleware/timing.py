"""
Per-request timing and request ids.

Every response carries ``X-Request-ID`` (echoed from the client when sent)
and ``X-Request-Duration-Ms``. One log record per request is emitted with
its project / element scope, at WARNING when it ran past
``SLOW_REQUEST_MS`` and at ERROR for 5xx answers.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

QUIET_PATHS = frozenset({"/api/v1/health", "/api/v1/health/ready", "/api/v1/health/live"})

# Grouping a large project is the usual offender.
SLOW_REQUEST_MS = 1000


def _request_scope() -> dict:
    args = request.view_args or {}
    return {
        "project_id": args.get("project_id") or request.args.get("project_id", type=int),
        "element_id": args.get("element_id"),
        "job_id": args.get("job_id"),
    }


def _level_for(status: int, elapsed_ms: float) -> int:
    if elapsed_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    if status >= 500:
        return logging.ERROR
    return logging.DEBUG


def init_request_timing(app: Flask):
    @app.before_request
    def _stamp_request():
        g.started_at = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_request(response):
        started = g.get("started_at")
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"

        if request.path not in QUIET_PATHS:
            logger.log(
                _level_for(response.status_code, elapsed_ms),
                "%s %s -> %d in %.0fms",
                request.method, request.path, response.status_code, elapsed_ms,
                extra={
                    "method": request.method,
                    "path": request.path,
                    "status": response.status_code,
                    "duration_ms": round(elapsed_ms, 1),
                    "remote_addr": request.remote_addr,
                    "request_id": g.get("request_id"),
                    **_request_scope(),
                },
            )
        return response
