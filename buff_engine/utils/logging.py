"""
Logging setup for the buff engine CLI and monitor.

``configure_logging(config)`` is called by each CLI command after the config
loads; engine, store and rules modules only ever ask for
``logging.getLogger(__name__)``.

Backend-facing log calls carry context through ``extra=``:

  ``user_id``      ledger owner / guard subject
  ``buff_id``      ledger entry being granted, revoked or skipped
  ``procedure``    backend procedure or resource that was called
  ``status_code``  HTTP status of a failed backend call

Text format appends whichever of these are present::

    2025-11-22T15:00:00Z [WARNING] buff_engine.engine.guard: Weekday lookup ... [user_id=u-1 procedure=is_weekend_for_user status_code=503]

JSON format (``json_format = true`` under ``[logging]``) puts them at the top
level of each line next to ``ts``, ``level``, ``logger`` and ``msg``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from buff_engine.config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

CONTEXT_FIELDS = ("user_id", "buff_id", "procedure", "status_code")

# httpx logs every request at INFO, one line per guard lookup.
_QUIET_LOGGERS = ("httpx", "httpcore")

_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class _ContextFormatter(logging.Formatter):
    """Plain text line with a trailing ``[key=value ...]`` context block."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        return line


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
                LOG_DATE_FORMAT
            ),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(_context(record))
        for key, val in record.__dict__.items():
            if key not in _RECORD_ATTRS and key not in payload and not key.startswith("_"):
                payload[key] = val
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _handlers(config: "LoggingConfig", level: int) -> list[logging.Handler]:
    formatter: logging.Formatter = (
        _JsonFormatter()
        if config.json_format
        else _ContextFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    )
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def configure_logging(config: "LoggingConfig") -> None:
    """Point the root logger at stdout (and ``config.log_file`` if set).

    Args:
        config: ``[logging]`` section of ``AppConfig``; ``level`` is already
            upper-cased by its validator.
    """
    level = logging.getLevelName(config.level)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, handlers=_handlers(config, level), force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
