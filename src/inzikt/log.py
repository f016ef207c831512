"""Logging setup — structlog on top of stdlib logging."""

from __future__ import annotations

import logging

import structlog

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure stdlib logging and route structlog loggers through it.

    Safe to call more than once; only the first call has an effect.
    """
    global _configured
    if _configured:
        return

    if level is None:
        from inzikt.config import get_settings

        level = get_settings().log_level

    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True
