"""Structured JSON logging configuration."""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, Any

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")

# Attributes every LogRecord carries; anything else came in through extra=
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, extras."""

    def _extras(self, record: logging.LogRecord) -> Dict[str, Any]:
        return {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not callable(value)
        }

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_data: Dict[str, Any] = {
            "timestamp": created.isoformat().replace('+00:00', 'Z'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        log_data.update(self._extras(record))

        # Session contexts carry exceptions and other non-JSON values
        return json.dumps(log_data, default=str, ensure_ascii=False)


class LoggingSessionLogger:
    """SessionLogger backed by stdlib logging.

    Session tags become the log message, the context becomes structured extras.
    Tags ending in "error" are logged at ERROR level.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or logging.getLogger("stream_word_session")

    def info(self, tag: str, context: Dict[str, Any]) -> None:
        extra = {
            key: str(value) if isinstance(value, BaseException) else value
            for key, value in context.items()
        }
        level = logging.ERROR if tag.endswith("error") else logging.INFO
        self._logger.log(level, tag, extra=extra)


def setup_structured_logging(level: str | None = None):
    """Route every logger, uvicorn included, through one JSON stderr handler.

    Args:
        level: Root level name; defaults to the LOG_LEVEL env var.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger = logging.getLogger()
    root_logger.setLevel((level or LOG_LEVEL).upper())
    root_logger.handlers = [handler]

    for name in _NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.handlers = [handler] if name.startswith("uvicorn") else []
        noisy.setLevel(logging.WARNING)
