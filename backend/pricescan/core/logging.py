"""structlog configuration shared by the CLI, scheduler and tests."""

import logging
import sys
from typing import Optional

import structlog

from pricescan.config import settings


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Route structlog through stdlib logging.

    Args:
        level: Log level name, defaults to settings.LOG_LEVEL
        json_output: Render JSON lines instead of console output,
            defaults to settings.LOG_JSON
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    use_json = settings.LOG_JSON if json_output is None else json_output

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(message)s",
        stream=sys.stdout,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
