"""Structured logging: one JSON object per line on stdout.

Records carry free-form `context`; a `sender_id` inside it is lifted to the top
level so a whole conversation can be filtered with one key.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = dict(getattr(record, "context", None) or {})
        sender_id = context.pop("sender_id", None)
        if sender_id is not None:
            entry["sender_id"] = sender_id
        if context:
            entry["context"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"lexintake.{name}")


class SenderLoggerAdapter(logging.LoggerAdapter):
    """Binds a sender (and message id) to every record; per-call `context=` is merged in."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = {**self.extra, **(kwargs.pop("context", None) or {})}
        kwargs["extra"] = {"context": context}
        return msg, kwargs
