"""Run the backend with uvicorn using environment settings."""

from __future__ import annotations

import logging

import uvicorn

from guesswho.backend.api import create_app
from guesswho.backend.config import load_settings
from guesswho.backend.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main() -> int:
    settings = load_settings()
    setup_logging(settings.log_level)
    logger.info("Starting Guess Who backend on %s:%s", settings.host, settings.port)
    uvicorn.run(
        create_app(settings=settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
