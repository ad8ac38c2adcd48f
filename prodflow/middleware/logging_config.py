"""
Structured logging configuration.

- Development / testing: human-readable colored lines, workflow context inline
- Production: one JSON object per line (log aggregator compatible)
- Log level: LOG_LEVEL (env or app config)

Workflow log calls pass their context through ``extra``:

    logger.info("Activity %s advanced", aid,
                extra={"activity_id": aid, "department": dept, "event_type": "advance"})
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Request fields set by the timing middleware
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")

# Workflow fields set by the engine, ledger and cache
WORKFLOW_FIELDS = ("activity_id", "department", "actor", "event_type", "cache_key")

NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "redis", "alembic")


def _extras(record: logging.LogRecord, fields) -> dict:
    return {k: getattr(record, k) for k in fields if getattr(record, k, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON document per record, including any request / workflow extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_extras(record, REQUEST_FIELDS))
        entry.update(_extras(record, WORKFLOW_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line formatter; appends ``[activity=7 dept=batida]`` style tags."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    _TAGS = (("activity_id", "activity"), ("department", "dept"), ("actor", "by"))

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tags = " ".join(
            f"{label}={getattr(record, attr)}"
            for attr, label in self._TAGS
            if getattr(record, attr, None) is not None
        )
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"
        if tags:
            line += f" [{tags}]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    Level: LOG_LEVEL from app config, then env, defaulting to INFO in
    production and DEBUG elsewhere.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = app.config.get("LOG_LEVEL") or os.getenv("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)

    # Replace rather than add, so repeated create_app() calls do not duplicate lines
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
