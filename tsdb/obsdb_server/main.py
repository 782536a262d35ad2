"""
ObsDB Server - Main entry point.

This module starts the ObsDB HTTP server:
- Loads configuration from the environment
- Configures logging
- Serves the REST API with uvicorn; the app opens the store and creates
  missing partitions at startup

Usage:
    python -m tsdb.obsdb_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Partitions exist before the first request is served
    - Graceful shutdown closes the store after in-flight requests finish
"""

from __future__ import annotations

import logging
import sys

import json_log_formatter
import uvicorn

from .api import create_http_app
from .config import ServerConfig

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    app = create_http_app(config)

    logger.info(f"Starting ObsDB server on {config.http.host}:{config.http.port}")
    uvicorn.run(
        app,
        host=config.http.host,
        port=config.http.port,
        log_config=None,  # Keep the handlers installed by setup_logging
    )
    logger.info("ObsDB server stopped")


if __name__ == "__main__":
    main()
