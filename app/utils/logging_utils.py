"""Logging setup: console output plus size-rotated JSON records on disk."""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from app.config import settings

_CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, context.

    Contextual fields are passed as ``extra={"context": {...}}``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if isinstance(context, dict):
            for key, value in context.items():
                payload.setdefault(key, value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def setup_logging(
    level: str | None = None,
    log_to_file: bool | None = None,
    log_dir: str | None = None,
) -> None:
    """Configure the root logger once.

    A second call is a no-op so importing the app repeatedly (tests,
    reloaders) does not stack handlers.
    """
    root_logger = logging.getLogger()
    if any(getattr(h, "_search_handler", False) for h in root_logger.handlers):
        return

    level_name = (level or settings.log_level).upper()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    stream_handler._search_handler = True
    root_logger.addHandler(stream_handler)

    if log_to_file if log_to_file is not None else settings.log_to_file:
        directory = log_dir or settings.log_dir
        os.makedirs(directory, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(directory, settings.log_file_name),
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(JsonFormatter())
        file_handler._search_handler = True
        root_logger.addHandler(file_handler)


def preview(text: str | None, limit: int | None = None) -> str:
    """Truncate query text before it goes anywhere near a log record."""
    if not text:
        return ""
    limit = limit or settings.log_query_preview_chars
    return text if len(text) <= limit else text[:limit] + "..."
