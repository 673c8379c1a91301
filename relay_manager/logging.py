"""Logging setup for the relay manager."""

from __future__ import annotations

import contextvars
import json
import logging
import os
import pathlib
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict

_LOG_CONFIGURED = False
_REQUEST_ID_CTX: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_STATION_ID_CTX: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "station_id", default=None
)

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent

_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message"}


class CommandContextFilter(logging.Filter):
    """Stamp records with the request and station currently being handled."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = _REQUEST_ID_CTX.get()
        if getattr(record, "station_id", None) is None:
            record.station_id = _STATION_ID_CTX.get()
        return True


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line, carrying any ``extra`` fields verbatim."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_") or value is None:
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def set_request_id(request_id: str | None) -> contextvars.Token[str | None]:
    return _REQUEST_ID_CTX.set(request_id)


def reset_request_id(token: contextvars.Token[str | None]) -> None:
    _REQUEST_ID_CTX.reset(token)


def get_request_id() -> str | None:
    return _REQUEST_ID_CTX.get()


def bind_station(station_id: str | None) -> contextvars.Token[str | None]:
    """Attach a station id to every record logged in the current context."""
    return _STATION_ID_CTX.set(station_id)


def unbind_station(token: contextvars.Token[str | None]) -> None:
    _STATION_ID_CTX.reset(token)


def _log_file_path() -> pathlib.Path:
    path = pathlib.Path(os.getenv("LOG_FILE", "logs/relay.jsonl"))
    if not path.is_absolute():
        path = BASE_DIR.parent / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def configure_logging() -> None:
    """Install console and JSON-lines file handlers on the root logger once."""
    global _LOG_CONFIGURED
    if _LOG_CONFIGURED:
        return

    console_level = getattr(logging, os.getenv("LOG_LEVEL", "WARNING").upper(), logging.WARNING)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    context_filter = CommandContextFilter()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.addFilter(context_filter)
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s "
            "(request_id=%(request_id)s station_id=%(station_id)s)"
        )
    )
    root_logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(_log_file_path(), maxBytes=5_000_000, backupCount=3)
    file_handler.setLevel(logging.INFO)
    file_handler.addFilter(context_filter)
    file_handler.setFormatter(JsonLineFormatter())
    root_logger.addHandler(file_handler)

    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    _LOG_CONFIGURED = True


__all__ = [
    "bind_station",
    "configure_logging",
    "get_request_id",
    "reset_request_id",
    "set_request_id",
    "unbind_station",
]
