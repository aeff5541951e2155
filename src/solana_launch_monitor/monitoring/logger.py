"""JSON-lines logging with per-request correlation ids.

Every record carries the correlation id of the viewer request it was emitted
under (``-`` outside one) and the name of the asyncio task that emitted it, so
interleaved feed, poller and enrichment output can be told apart.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import IO, Any, Dict, Iterator, Optional

from ..config.settings import MonitoringConfig

_CORRELATION_ID: ContextVar[str] = ContextVar("correlation_id", default="-")
_loggers: Dict[str, logging.Logger] = {}
_configured = False

# Third-party loggers that are chatty at INFO.
NOISY_LOGGERS = ("websockets", "httpx", "httpcore", "uvicorn.access")

_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName", "correlation_id", "task"}


def _task_name() -> Optional[str]:
    try:
        task = asyncio.current_task()
    except RuntimeError:
        return None
    return task.get_name() if task is not None else None


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _CORRELATION_ID.get()
        record.task = _task_name()
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields are nested under ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", _CORRELATION_ID.get()),
        }
        task = getattr(record, "task", None)
        if task:
            entry["task"] = task
        extra = {k: v for k, v in vars(record).items() if k not in _RESERVED and not k.startswith("_")}
        if extra:
            entry["extra"] = extra
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(config: Optional[MonitoringConfig] = None, stream: Optional[IO[str]] = None) -> None:
    """Install the JSON handler on the root logger. Later calls are no-ops."""

    global _configured
    if _configured:
        return
    level_name = (config or MonitoringConfig()).log_level.upper()
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredFormatter())
    handler.addFilter(_ContextFilter())
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.getLevelNamesMapping().get(level_name, logging.INFO))
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.captureWarnings(True)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    logger = _loggers.get(name)
    if logger is None:
        logger = _loggers[name] = logging.getLogger(name)
    return logger


@contextmanager
def correlation_scope(correlation_id: Optional[str]) -> Iterator[str]:
    """Tag every record logged inside the block (including across awaits) with *correlation_id*."""

    value = correlation_id or "-"
    token = _CORRELATION_ID.set(value)
    try:
        yield value
    finally:
        _CORRELATION_ID.reset(token)


__all__ = ["NOISY_LOGGERS", "StructuredFormatter", "configure_logging", "correlation_scope", "get_logger"]
