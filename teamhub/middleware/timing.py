"""
Request id and duration for every API call.

An upstream ``X-Request-ID`` is honoured when it looks sane, otherwise a new
one is minted. Both the id and the elapsed time are echoed back as response
headers, and one access record per request goes to the ``teamhub.access``
logger with the acting user and project attached.
"""

import logging
import re
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger("teamhub.access")

_PROBE_PATHS = frozenset({"/api/v1/health/live", "/api/v1/health/ready"})
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

SLOW_THRESHOLD_MS = 1000


def _incoming_request_id() -> str:
    supplied = request.headers.get("X-Request-ID", "")
    return supplied if _REQUEST_ID_RE.match(supplied) else uuid.uuid4().hex[:12]


def _access_level(status: int, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if duration_ms > SLOW_THRESHOLD_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    """Register the before/after hooks on ``app``."""

    @app.before_request
    def _stamp_request():
        g.request_start = time.perf_counter()
        g.request_id = _incoming_request_id()

    @app.after_request
    def _record_request(response):
        started = g.get("request_start")
        if started is None:
            return response

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        if request.path in _PROBE_PATHS:
            return response

        level = _access_level(response.status_code, duration_ms)
        logger.log(
            level,
            "%s %s -> %d%s",
            request.method,
            request.path,
            response.status_code,
            " (slow)" if duration_ms > SLOW_THRESHOLD_MS else "",
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
                "remote_addr": request.remote_addr,
                "project_id": (request.view_args or {}).get("project_id"),
            },
        )
        return response
