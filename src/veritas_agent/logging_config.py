"""
Logging configuration for the Veritas investigator.

Two output formats, picked by ``LOG_FORMAT``:
- ``text`` (default): one human-readable line per record
- ``json``: one JSON object per line for log shipping

Each record carries the HTTP request id and the token being investigated,
so interleaved fan-out logs from concurrent investigations stay readable.
"""

from __future__ import annotations

import json as json_mod
import logging
import sys
import uuid
from contextvars import ContextVar

from config import LOG_FORMAT, LOG_LEVEL

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
subject_ctx: ContextVar[str] = ContextVar("subject", default="-")


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": request_id_ctx.get(),
            "subject": subject_ctx.get(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json_mod.dumps(entry, default=str)


class _ContextFilter(logging.Filter):
    """Copy the context variables onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get()  # type: ignore[attr-defined]
        record.subject = _short(subject_ctx.get())  # type: ignore[attr-defined]
        return True


def _short(subject: str) -> str:
    return subject if len(subject) <= 12 else subject[:12] + "…"


def setup_logging() -> None:
    """Configure the root logger from ``LOG_LEVEL`` / ``LOG_FORMAT``."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if LOG_FORMAT == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s (%(request_id)s|%(subject)s) %(message)s",
                defaults={"request_id": "-", "subject": "-"},
            )
        )
    handler.addFilter(_ContextFilter())
    root.addHandler(handler)


def generate_request_id() -> str:
    """Create a short unique request ID."""
    return uuid.uuid4().hex[:12]
