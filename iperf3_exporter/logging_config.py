"""Logging configuration for the iperf3 exporter."""
import json
import logging
import sys
from datetime import datetime, timezone

LOG_LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

LOGFMT_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


def _logfmt_value(value: str) -> str:
    """Quote a logfmt value, escaping backslashes, quotes and newlines."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


class LogfmtFormatter(logging.Formatter):
    """One ``key=value`` line per log record."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return (
            f"time={self.formatTime(record, LOGFMT_DATEFMT)} "
            f"level={record.levelname} "
            f"logger={record.name} "
            f"msg={_logfmt_value(message)}"
        )


class JSONFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(level: str = "info", fmt: str = "logfmt") -> None:
    """Configure application-wide logging.

    Logs to stderr. ``level`` is one of debug, info, warn, error (unknown
    values fall back to info); ``fmt`` is logfmt or json.
    """
    log_level = LOG_LEVEL_MAP.get(level.lower(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(LogfmtFormatter())

    logging.basicConfig(level=log_level, handlers=[handler], force=True)

    # uvicorn installs its own handlers; route its records through ours
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True
        uvicorn_logger.setLevel(log_level)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured: level={logging.getLevelName(log_level)} format={fmt}")
