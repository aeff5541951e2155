"""Monitoring package exports and helpers."""

from __future__ import annotations

from typing import Optional

from ..config.settings import AppConfig
from .logger import configure_logging, correlation_scope, get_logger
from .metrics import METRICS


def bootstrap_observability(config: Optional[AppConfig] = None) -> None:
    """Configure process-wide logging before any task starts."""

    configure_logging(config.monitoring if config is not None else None)
    METRICS.reset()


__all__ = ["bootstrap_observability", "configure_logging", "correlation_scope", "get_logger", "METRICS"]
