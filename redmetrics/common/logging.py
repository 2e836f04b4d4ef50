import json
import logging
from datetime import datetime, timezone
from logging.config import dictConfig
from typing import Any

from redmetrics.common.errors import ConfigurationError

LOG_FORMATS = ("json", "plain")
PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# 推送和记录失败的日志不受根级别影响，始终至少输出 WARNING
PACKAGE_LOGGERS = ("redmetrics.push", "redmetrics.metrics")


def build_logging_config(level: str = "INFO", fmt: str = "json") -> dict[str, Any]:
    """dictConfig for the service; ``fmt`` picks the console formatter."""
    fmt = fmt.lower()
    if fmt not in LOG_FORMATS:
        raise ConfigurationError(f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}")
    level = level.upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigurationError(f"unknown LOG_LEVEL {level!r}")

    package_level = level if logging.getLevelName(level) <= logging.WARNING else "WARNING"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JsonFormatter},
            "plain": {"format": PLAIN_FORMAT},
            "startup": {"format": "%(levelname)s %(name)s: %(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": fmt,
            },
            "startup_console": {
                "class": "logging.StreamHandler",
                "formatter": "startup",
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        "loggers": {
            "redmetrics.startup": {
                "handlers": ["startup_console"],
                "level": "INFO",
                "propagate": False,
            },
            **{name: {"level": package_level} for name in PACKAGE_LOGGERS},
        },
    }


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    dictConfig(build_logging_config(level, fmt))


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra={"extra": {...}}`` fields are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            for key, value in record.extra.items():
                payload.setdefault(key, value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)
