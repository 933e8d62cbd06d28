"""
JSON-lines logging for ApiClient sessions.

Records carry an ``event`` name (http_request, http_retry, api_rate_limited,
api_server_error, http_fail, request_cancelled, http_headers) and a flat
``extra`` mapping, so a session's traffic can be filtered with jq:

    {"ts": "2024-01-15T10:30:00Z", "level": "WARNING", "session_id": "9f2c01ab",
     "event": "api_rate_limited", "module": "client", "msg": "Retryable status received; retrying",
     "extra": {"endpoint": "/open_api/v1.3/campaign/get/", "status": 429, "attempt": 1}}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class LogSettings:
    """Logger options; ``log_file`` adds a file handler next to stderr, ``jsonl=False`` writes plain text lines."""

    level: str
    session_id: str
    log_file: Path | None = None
    jsonl: bool = True


class JsonLineFormatter(logging.Formatter):
    """Formats a record as one JSON object, with the traceback under ``exc`` when present."""

    def __init__(self, session_id: str):
        super().__init__()
        self._session_id = session_id

    def format(self, record: logging.LogRecord) -> str:
        event = getattr(record, "event", "log")
        extra = getattr(record, "extra", {})
        if not isinstance(extra, dict):
            extra = {"value": extra}

        payload = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "session_id": self._session_id,
            "event": event,
            "module": record.module,
            "msg": record.getMessage(),
            "extra": extra,
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def build_logger(settings: LogSettings) -> logging.Logger:
    """Return the ``adsapi.<session_id>`` logger, replacing any handlers from an earlier call."""
    logger = logging.getLogger(f"adsapi.{settings.session_id}")
    logger.setLevel(settings.level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    if settings.jsonl:
        formatter: logging.Formatter = JsonLineFormatter(settings.session_id)
    else:
        formatter = logging.Formatter(f"%(asctime)s %(levelname)s [{settings.session_id}] %(message)s")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    message: str,
    *,
    exc_info: logging._ExcInfoType | None = None,
    **extra: Any,
) -> None:
    """Emit ``message`` tagged with ``event``; keyword arguments land under ``extra``."""
    logger.log(level, message, extra={"event": event, "extra": extra}, exc_info=exc_info)
