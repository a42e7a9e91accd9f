"""Application entry point for the Mizito Forwarder server."""

from __future__ import annotations

import logging
import sys

import uvicorn
from pydantic import ValidationError

from mizito_forwarder.config.settings import AppConfig
from mizito_forwarder.logging_config import get_logging_config, setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    """Start the Mizito Forwarder server."""
    try:
        config = AppConfig()
    except ValidationError as exc:
        setup_logging()
        logger.critical("Failed to load configuration: %s", exc)
        sys.exit(1)

    setup_logging(config.log_level)
    logger.info("Starting Mizito Forwarder on %s:%d", config.server.host, config.server.port)
    uvicorn.run(
        "mizito_forwarder.api.app:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        log_config=get_logging_config(config.log_level),
        timeout_graceful_shutdown=config.server.timeout_graceful_shutdown,
    )


if __name__ == "__main__":
    main()
