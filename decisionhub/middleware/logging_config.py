"""
Structured logging configuration.

Formatter comes from ``LOG_FORMAT`` ("json" or "readable"), level from
``LOG_LEVEL`` (DEBUG when unset in development and testing, INFO otherwise).
Services pass context with ``extra={...}``; the keys in LOG_FIELDS become
top-level JSON attributes, so one ballot or transition can be followed by
``process_instance_id`` across request and service log lines.
"""

import json
import logging
import sys
from datetime import datetime, timezone

LOG_FIELDS = (
    # request timing
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
    # decision domain
    "process_instance_id",
    "profile_id",
    "role_id",
    "permission",
    "vote_submission_id",
    "selection_count",
    "schema_type",
    "state_id",
    "from_state_id",
    "to_state_id",
    "action",
    "field",
)

# Short tags the readable format appends to the message
_SCOPE_TAGS = (("process_instance_id", "instance"), ("profile_id", "profile"))


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        for key in LOG_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line format for a developer terminal."""

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
        tags = "".join(
            f" {tag}={getattr(record, key)}"
            for key, tag in _SCOPE_TAGS
            if getattr(record, key, None)
        )
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            tags += f" [{duration:.0f}ms]"
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}{tags}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger for ``app``."""
    level_name = (app.config.get("LOG_LEVEL") or ("DEBUG" if app.debug or app.testing else "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    use_json = app.config.get("LOG_FORMAT", "json") == "json"

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if use_json else ReadableFormatter())
    handler.setLevel(level)

    # Cleared first so repeated create_app() calls don't duplicate lines
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not app.testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "json" if use_json else "readable")
