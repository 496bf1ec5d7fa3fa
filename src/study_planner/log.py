"""Logging setup."""
import logging

import structlog


def configure_logging(level: int = logging.INFO, json: bool = False) -> None:
    """Route structlog through stdlib logging with ISO timestamps.

    JSON output is meant for piping into log collectors; the console renderer
    is the default for interactive use.
    """
    logging.basicConfig(level=level)
    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
