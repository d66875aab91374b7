"""
Structured logging for the ingestion job engine.

Every module logs through ``get_logger(__name__)``; events are snake_case
names with key/value context (``job_id``, counters, paths).
"""

import logging
import sys
from typing import Any

import structlog


_CONFIGURED = False


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure structlog on top of stdlib logging.

    Args:
        level: Minimum log level name (DEBUG, INFO, WARNING, ...)
        json_output: Render JSON lines instead of the console renderer
    """
    global _CONFIGURED

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        stream=sys.stderr,
    )

    renderer: Any
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str) -> Any:
    """Return a structlog logger bound to ``name``, configuring defaults once."""
    if not _CONFIGURED:
        configure_logging()
    return structlog.get_logger(name)
