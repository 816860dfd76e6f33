"""
Background jobs for TeamHub.

Jobs are plain functions taking the Flask app, registered by name with
``@register_job``. ``SchedulerService.run_job`` executes one inside an app
context and remembers the outcome so ``/api/v1/health/live`` can report the
last reconciliation run. When ``RECONCILE_INTERVAL_SECONDS`` is positive a
daemon thread runs every registered job on that period; otherwise jobs run
only from ``flask reconcile-chats``.

Outcome dict:
    {"job_name", "status": "success"|"failed"|"error", "duration_ms",
     "result", "error"}
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

from flask import Flask

logger = logging.getLogger(__name__)

JobFn = Callable[[Flask], Any]

_job_registry: dict[str, JobFn] = {}


def register_job(name: str):
    """Register the decorated function under ``name``."""
    def decorator(fn: JobFn) -> JobFn:
        if name in _job_registry and _job_registry[name] is not fn:
            raise ValueError(f"Job {name!r} is already registered")
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, JobFn]:
    return dict(_job_registry)


def _outcome(job_name: str, status: str, *, duration_ms: int = 0, result=None, error=None) -> dict:
    return {
        "job_name": job_name,
        "status": status,
        "duration_ms": duration_ms,
        "result": result,
        "error": error,
    }


class SchedulerService:
    """Class-level job runner bound to one app by ``init_app``."""

    _app: Flask | None = None
    _thread: threading.Thread | None = None
    _stop: threading.Event | None = None
    _last_results: dict[str, dict] = {}

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        cls._last_results = {}
        app.extensions["scheduler"] = cls

        interval = int(app.config.get("RECONCILE_INTERVAL_SECONDS") or 0)
        if interval > 0 and not app.testing:
            cls.start(interval)
        logger.debug("Scheduler bound: jobs=%s interval=%ss", sorted(_job_registry), interval)

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """Run ``job_name`` now and return its outcome dict.

        Unknown jobs and an unbound scheduler give ``status="error"``; an
        exception inside the job gives ``status="failed"`` and is logged, not
        raised, so one bad run never kills the background thread.
        """
        fn = _job_registry.get(job_name)
        if fn is None:
            return _outcome(job_name, "error", error=f"Unknown job: {job_name}")
        if cls._app is None:
            return _outcome(job_name, "error", error="Scheduler not initialized")

        started = time.monotonic()
        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            logger.exception("Job %s failed", job_name, extra={"event_type": f"job.{job_name}"})
            outcome = _outcome(job_name, "failed", error=str(exc))
        else:
            outcome = _outcome(job_name, "success", result=result)
        outcome["duration_ms"] = int((time.monotonic() - started) * 1000)

        cls._last_results[job_name] = outcome
        logger.info(
            "Job %s finished: %s",
            job_name,
            outcome["status"],
            extra={"event_type": f"job.{job_name}", "duration_ms": outcome["duration_ms"]},
        )
        return outcome

    @classmethod
    def run_all(cls) -> list[dict]:
        return [cls.run_job(name) for name in sorted(_job_registry)]

    @classmethod
    def last_result(cls, job_name: str) -> dict | None:
        return cls._last_results.get(job_name)

    # ── Background thread ───────────────────────────────────────────────

    @classmethod
    def start(cls, interval_seconds: int) -> None:
        if cls._thread is not None and cls._thread.is_alive():
            return
        stop = threading.Event()

        def _loop():
            while not stop.wait(interval_seconds):
                cls.run_all()

        cls._stop = stop
        cls._thread = threading.Thread(target=_loop, name="teamhub-scheduler", daemon=True)
        cls._thread.start()
        logger.info("Scheduler thread running every %ss", interval_seconds)

    @classmethod
    def stop(cls) -> None:
        if cls._stop is not None:
            cls._stop.set()
        if cls._thread is not None:
            cls._thread.join(timeout=5)
        cls._thread = None
        cls._stop = None
