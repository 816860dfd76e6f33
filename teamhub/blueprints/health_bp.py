"""
Health check blueprint (no bearer token required).

Endpoints:
    GET /api/v1/health/ready  — process is up
    GET /api/v1/health/live   — database, lifecycle schema, user directory,
                                last reconciliation run
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import inspect as sa_inspect

from teamhub.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")

LIFECYCLE_TABLES = frozenset({
    "projects",
    "project_roles",
    "applications",
    "invitations",
    "chats",
    "chat_messages",
    "notifications",
})


def _check_database() -> dict:
    started = time.perf_counter()
    db.session.execute(db.text("SELECT 1"))
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _check_schema() -> dict:
    missing = sorted(LIFECYCLE_TABLES - set(sa_inspect(db.engine).get_table_names()))
    if missing:
        return {"status": "error", "missing_tables": missing}
    return {"status": "ok"}


def _check_user_directory() -> dict:
    # Optional collaborator: reported, never fails overall health
    gateway = current_app.extensions.get("user_directory")
    if gateway is None or not gateway.enabled:
        return {"status": "skipped", "detail": "no USER_DIRECTORY_URL configured"}
    return {"status": "configured", "url": gateway.base_url}


def _check_reconciliation() -> dict:
    scheduler = current_app.extensions.get("scheduler")
    last = scheduler.last_result("chat_status_reconciliation") if scheduler else None
    if not last:
        return {"status": "not_run"}
    summary = {"status": last["status"], "duration_ms": last["duration_ms"]}
    if last.get("result"):
        summary["remirrored"] = last["result"].get("remirrored", 0)
    return summary


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {}
    healthy = True

    for name, probe in (("database", _check_database), ("schema", _check_schema)):
        try:
            checks[name] = probe()
        except Exception as exc:
            db.session.rollback()
            checks[name] = {"status": "error", "detail": str(exc)}
            logger.error("Health check %s failed: %s", name, exc)
        healthy = healthy and checks[name]["status"] == "ok"

    checks["user_directory"] = _check_user_directory()
    checks["reconciliation"] = _check_reconciliation()
    checks["app"] = {"name": "TeamHub", "debug": current_app.debug, "testing": current_app.testing}

    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
