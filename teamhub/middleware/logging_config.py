"""
Structured logging configuration.

Lifecycle services log with ``extra={...}`` (project_id, request_kind,
entity_id, event_type, ...). ``RequestContextFilter`` adds the HTTP request
id and the acting user to every record emitted while a request is active, so
a single Apply or Accept can be followed across the ledger, role store and
chat store log lines.

Formats:
    development / testing   one coloured line per record
    production              one JSON object per line
Level comes from LOG_LEVEL (DEBUG outside production, INFO in production).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Structured fields services pass via ``extra={...}``
EXTRA_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
    "actor_id",
    "project_id",
    "request_kind",
    "entity_id",
    "chat_id",
    "event_type",
)

_NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "blinker")


def structured_fields(record: logging.LogRecord) -> dict:
    return {key: getattr(record, key) for key in EXTRA_FIELDS if getattr(record, key, None) is not None}


class RequestContextFilter(logging.Filter):
    """Stamp request_id / actor_id from ``flask.g`` onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = g.get("request_id")
            if getattr(record, "actor_id", None) is None:
                record.actor_id = g.get("current_user_id")
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for the log aggregator."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(structured_fields(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured single-line format for a developer terminal."""

    _LEVEL_COLOURS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def _tags(self, record: logging.LogRecord) -> str:
        tags = []
        if getattr(record, "project_id", None) is not None:
            tags.append(f"project={record.project_id}")
        kind = getattr(record, "request_kind", None)
        if kind:
            tags.append(f"{kind}#{getattr(record, 'entity_id', '?')}")
        if getattr(record, "actor_id", None):
            tags.append(f"by={record.actor_id}")
        return f" <{' '.join(tags)}>" if tags else ""

    def format(self, record: logging.LogRecord) -> str:
        colour = self._LEVEL_COLOURS.get(record.levelno, "0")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"\033[{colour}m{stamp} {record.levelname:<8}\033[0m {record.name}: {record.getMessage()}"
        line += self._tags(record)
        event = getattr(record, "event_type", None)
        if event:
            line += f" ({event})"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger for ``app``'s environment."""
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter())
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())

    # Repeated create_app() calls (tests) must not stack handlers
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "json" if production else "readable")
