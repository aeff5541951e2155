"""Entrypoint for the Solana launch monitor relay."""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

import uvicorn
from pydantic import ValidationError

from .config.settings import AppConfig, get_app_config
from .dashboard.app import create_app
from .ingestion.event_listener import LaunchMonitor
from .monitoring import bootstrap_observability, configure_logging
from .monitoring.logger import get_logger

logger = get_logger(__name__)


def load_config() -> AppConfig:
    """Load configuration or exit with status 1."""

    try:
        return get_app_config()
    except ValidationError as exc:
        configure_logging()
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()))
            logger.error("Invalid configuration for %s: %s", location or "<root>", error.get("msg"))
        sys.exit(1)


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run the Solana launch monitor relay")
    parser.add_argument("--host", help="Override server host")
    parser.add_argument("--port", type=int, help="Override server port")
    args = parser.parse_args(argv)

    config = load_config()
    bootstrap_observability(config)
    monitor = LaunchMonitor(config)
    app = create_app(monitor)
    host = args.host or config.server.host
    port = args.port or config.server.port
    logger.info("Relay listening on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level=config.monitoring.log_level.lower())


if __name__ == "__main__":
    main()
