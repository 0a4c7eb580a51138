"""
Logging configuration for the portal API.

- Development: human-readable single-line format
- Production: JSON lines (LOG_FORMAT=json) for log aggregation
- Level: LOG_LEVEL config value (default INFO)
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import Flask


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    EXTRA_KEYS = ("org_id", "user_id", "invoice_id", "event_type", "path", "method")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        for key in self.EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        return json.dumps(entry, ensure_ascii=False)


READABLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(app: Flask) -> None:
    """Attach a single stream handler to the root logger and the app logger."""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    if app.config.get("LOG_FORMAT") == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(READABLE_FORMAT))

    root = logging.getLogger()
    # create_app may run many times in one process (tests); don't stack handlers
    for existing in list(root.handlers):
        if getattr(existing, "_brfportal_handler", False):
            root.removeHandler(existing)
    handler._brfportal_handler = True
    root.addHandler(handler)
    root.setLevel(level)

    app.logger.setLevel(level)

    # SQL echo is far too noisy below WARNING
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
