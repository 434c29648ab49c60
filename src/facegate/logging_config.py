"""
Logging configuration for the FaceGate engine.

Sets up structlog with either JSON (for log shipping) or console rendering,
and binds the device identifier to every event emitted afterwards.
"""

import logging
import sys
from typing import Optional
import structlog

from .constants import DEFAULT_DEVICE_ID


def configure_logging(
    level: str = "INFO",
    structured: bool = True,
    device_id: Optional[str] = None,
) -> None:
    """
    Configure structlog for the process.

    Parameters
    ----------
    level : str, default="INFO"
        Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    structured : bool, default=True
        Render JSON lines instead of human-readable console output.
    device_id : str, optional
        Device identifier bound to all events; defaults to
        ``DEFAULT_DEVICE_ID``.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    renderer = (
        structlog.processors.JSONRenderer()
        if structured
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        # Resolve sys.stderr per logger so redirected streams are honoured
        logger_factory=lambda *args: structlog.PrintLogger(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(device_id=device_id or DEFAULT_DEVICE_ID)
