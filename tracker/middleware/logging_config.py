"""
Logging setup for the tracker.

Two output shapes on stderr:
  - text: one coloured line per record, with the project/element/job a
    record concerns appended, e.g. ``(project 3 / element 41)``
  - json: one object per line for log shippers; scope ids, request id
    and request timing become top-level keys

Selection: ``LOG_FORMAT`` (text|json) wins; otherwise json outside
DEBUG/TESTING. ``LOG_LEVEL`` overrides the level.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_app_context

SCOPE_KEYS = ("project_id", "element_id", "job_id")
REQUEST_KEYS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")

_QUIET_LOGGERS = ("werkzeug", "urllib3", "sqlalchemy.engine", "flask_limiter")


class RequestIdFilter(logging.Filter):
    """Stamp the current request id on records logged while handling a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_app_context():
            record.request_id = g.get("request_id")
        return True


def _scope(record: logging.LogRecord) -> dict:
    return {k: getattr(record, k) for k in SCOPE_KEYS if getattr(record, k, None) is not None}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        entry.update(_scope(record))
        for key in REQUEST_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    LEVEL_COLOURS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self.LEVEL_COLOURS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{colour}{clock} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        scope = _scope(record)
        if scope:
            line += " (" + " / ".join(f"{k[:-3]} {v}" for k, v in scope.items()) + ")"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _wants_json(app) -> bool:
    explicit = os.getenv("LOG_FORMAT", "").strip().lower()
    if explicit in ("json", "text"):
        return explicit == "json"
    return not (app.config.get("DEBUG") or app.config.get("TESTING"))


def configure_logging(app):
    """Install one stderr handler on the root logger for *app*.

    Safe to call for every app the test-suite creates; earlier handlers
    are replaced rather than stacked.
    """
    as_json = _wants_json(app)
    default_level = "INFO" if as_json else "DEBUG"
    level_name = os.getenv("LOG_LEVEL", default_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if as_json else ReadableFormatter())
    handler.addFilter(RequestIdFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.config.get("TESTING"):
        app.logger.info("Logging ready: level=%s format=%s", level_name, "json" if as_json else "text")
