import json
import logging
import sys
from typing import Optional, TextIO

from . import config

LOCAL_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine")


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record, for log collectors outside local development."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(
    level: Optional[str] = None, environment: Optional[str] = None, stream: Optional[TextIO] = None
) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stdout)
    if (environment or config.ENVIRONMENT) == "local":
        handler.setFormatter(logging.Formatter(LOCAL_FORMAT))
    else:
        handler.setFormatter(JsonLineFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
