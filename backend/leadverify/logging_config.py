"""
Logging setup for the API process and the worker.

Plain text by default; ``LOG_FORMAT=json`` emits one JSON object per line with
any ``extra={...}`` fields merged in.
"""
import json
import logging
import sys
from datetime import datetime, timezone

from .config import settings

# LogRecord attributes that are not user-supplied extras
_RESERVED = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "message", "asctime", "taskName",
}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = None, fmt: str = None) -> None:
    level_name = (level or settings.LOG_LEVEL).upper()
    handler = logging.StreamHandler(sys.stdout)
    if (fmt or settings.LOG_FORMAT).lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # SQLAlchemy echoes through its own logger when DEBUG is on
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
