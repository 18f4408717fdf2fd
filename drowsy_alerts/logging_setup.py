"""
Logging configuration.

structlog on top of the standard library `logging` module: one call at process
start, JSON lines for deployments and the console renderer for development.
"""

from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(level: str = "INFO", fmt: str = "console", app_name: str = "drowsy-alerts") -> None:
    """
    Configure stdlib logging and structlog for the whole process.

    Parameters
    ----------
    level
        Root log level name (e.g., "DEBUG", "INFO").
    fmt
        "json" for one JSON object per line; anything else renders for consoles.
    app_name
        Added to every log line as ``app``.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
        force=True,
    )

    def add_app_name(logger, method_name, event_dict):
        event_dict.setdefault("app", app_name)
        return event_dict

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            add_app_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if fmt == "json" else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
