"""Central logging helpers"""
from __future__ import annotations

import logging
import sys

import structlog
import structlog.stdlib

_DEFAULT_FORMAT = "%(message)s"


def setup_logging(level: int = logging.INFO, json: bool = False) -> None:
    """Configure structlog + stdlib logging for the fuzzer"""
    logging.basicConfig(level=level, stream=sys.stderr, format=_DEFAULT_FORMAT, force=True)

    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.get_logger().debug("logging_initialized", level=logging.getLevelName(level))
