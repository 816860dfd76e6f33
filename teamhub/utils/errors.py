"""JSON error bodies for the TeamHub API.

Every error leaves the API as::

    {"error": "<message>", "code": "ERR_...", "details": {...}}

Blueprints call ``api_error`` directly only for malformed input. Lifecycle
rejections are raised as ``LifecycleError`` subclasses from the services and
turned into the same body by the handlers ``register_error_handlers``
installs; their codes and statuses live on the exception classes.
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from sqlalchemy.exc import OperationalError

from teamhub.core.exceptions import LifecycleError
from teamhub.models import db

logger = logging.getLogger(__name__)


class E:
    """Codes for failures detected outside the lifecycle services."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    NOT_FOUND = "ERR_NOT_FOUND"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    RATE_LIMITED = "ERR_RATE_LIMITED"
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.RATE_LIMITED: 429,
    E.DATABASE: 503,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for ``code``.

    ``status`` defaults to the code's entry in ``_DEFAULT_STATUS`` and then
    to 400. ``details`` is omitted from the body when empty.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _DEFAULT_STATUS.get(code, 400)


def register_error_handlers(app) -> None:
    """Map lifecycle rejections, store faults and HTTP errors to JSON bodies."""

    @app.errorhandler(LifecycleError)
    def _lifecycle_rejected(error: LifecycleError):
        logger.info(
            "Rejected %s %s: %s",
            request.method,
            request.path,
            error,
            extra={"path": request.path, "event_type": error.code},
        )
        return api_error(error.code, str(error), status=error.status, details=error.details)

    @app.errorhandler(OperationalError)
    def _store_unavailable(error: OperationalError):
        # Nothing was committed; the same command may be retried as-is
        db.session.rollback()
        logger.exception("Store unavailable on %s %s", request.method, request.path)
        return api_error(E.DATABASE, "Database temporarily unavailable, retry the request")

    @app.errorhandler(404)
    def _route_not_found(_error):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _method_not_allowed(_error):
        return api_error(E.METHOD_NOT_ALLOWED, f"{request.method} not allowed on {request.path}")

    @app.errorhandler(429)
    def _rate_limited(error):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": str(error.description)})

    @app.errorhandler(500)
    def _internal(error):
        logger.error("Unhandled error on %s: %s", request.path, error, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
