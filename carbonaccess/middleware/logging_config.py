"""
Logging configuration and per-request access log.

- Development / testing: colored one-line format
- Production: one JSON object per line
- Log level: LOG_LEVEL env variable

Services log access decisions as ``event key=value`` messages. The request
hook below adds one line per API call carrying the caller (from the JWT),
the response status and, for 403 responses, the deny reason; the JSON
formatter lifts those ``extra=`` fields into top-level keys.
"""

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone

from flask import Flask, g, request

logger = logging.getLogger("carbonaccess.access")

# Copied from ``extra=`` into the JSON record when present.
_EXTRA_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "user_id",
    "role",
    "tenant_id",
    "reason",
)

# High frequency, low value
_SKIP_LOG = frozenset({"/api/v1/health"})

SLOW_THRESHOLD_MS = 1000


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line format for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app: Flask):
    """
    Install a single stderr handler on the root logger.

    LOG_LEVEL defaults to INFO in production and DEBUG otherwise.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    # Repeated create_app calls (tests) replace the handler instead of stacking it.
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)


def init_request_logging(app: Flask):
    """Register before/after hooks that write one access line per API request."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None or request.path in _SKIP_LOG or not request.path.startswith("/api/"):
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "user_id": getattr(g, "jwt_user_id", None),
            "role": getattr(g, "jwt_role", None),
            "tenant_id": getattr(g, "jwt_tenant_id", None),
        }
        if response.status_code == 403 and response.is_json:
            extra["reason"] = ((response.get_json(silent=True) or {}).get("details") or {}).get("reason")

        if response.status_code >= 500:
            level = logging.ERROR
        elif duration_ms > SLOW_THRESHOLD_MS:
            level = logging.WARNING
        elif response.status_code in (401, 403):
            level = logging.INFO
        else:
            level = logging.DEBUG
        logger.log(
            level, "request method=%s path=%s status=%d user_id=%s",
            request.method, request.path, response.status_code, extra["user_id"], extra=extra,
        )
        return response
