"""
Structured Logging

Every module logs through structlog.get_logger(__name__).
configure_logging() is called once by the composition root; until then
structlog's defaults apply, so importing a module never configures logging.

Passwords and password hashes are never passed to a logger.
"""

import logging
import sys
from typing import Optional

import structlog

from ahorra.config import get_settings


def configure_logging(
    json_output: Optional[bool] = None,
    level: Optional[int] = None,
) -> None:
    """
    Configure structlog on top of the stdlib logging module.

    Args:
        json_output: Render JSON lines. Defaults to the log_json setting.
        level: Minimum level. DEBUG in debug mode, INFO otherwise.
    """
    app_settings = get_settings().app

    if json_output is None:
        json_output = app_settings.log_json
    if level is None:
        level = logging.DEBUG if app_settings.debug_mode else logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
