"""
Logging configuration for the zarrij library.

The library never configures output on its own. A NullHandler is attached to
the top-level ``zarrij`` logger on import, and calling scripts decide where
messages go:

    >>> import logging
    >>> from zarrij.logging import configure_logging
    >>> configure_logging(level=logging.DEBUG)

Modules inside the package obtain their loggers through :func:`get_logger`:

    >>> from zarrij.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.debug("Aligned crop to block grid")

Recovered metadata failures (malformed attributes, mismatched spacing
vectors) are logged at WARNING; crop alignment, style resolution and
per-channel export writes are logged at DEBUG.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

LIBRARY_LOGGER_NAME = "zarrij"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger that lives under the ``zarrij`` logger hierarchy.

    Args:
        name: The logger name, typically `__name__` from the calling module.
              If None, returns the root zarrij logger.

    Returns:
        A logger instance for the specified name

    Examples:
        >>> get_logger("zarrij.export").name
        'zarrij.export'
        >>> get_logger("myscript").name
        'zarrij.myscript'
    """
    if name is None:
        return logging.getLogger(LIBRARY_LOGGER_NAME)

    if name.startswith(LIBRARY_LOGGER_NAME):
        return logging.getLogger(name)

    return logging.getLogger(f"{LIBRARY_LOGGER_NAME}.{name}")


def configure_logging(
    level: Union[int, str] = logging.INFO,
    format_string: Optional[str] = None,
    handler: Optional[logging.Handler] = None,
    stream: Optional[object] = None,
) -> None:
    """
    Configure logging for the zarrij library.

    Convenience for calling scripts and the ``zarrij`` console script. Calling
    it more than once replaces the previously installed handler.

    Args:
        level: Logging level (e.g., logging.DEBUG, logging.INFO, "DEBUG", "INFO")
        format_string: Custom format string for log messages.
                      Defaults to "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        handler: Custom handler to use. If None, a StreamHandler is created.
        stream: Stream for the default StreamHandler (default: sys.stderr).
                Only used if handler is None.

    Examples:
        >>> configure_logging(level="DEBUG", format_string="%(levelname)s: %(message)s")
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    if isinstance(level, str):
        level = getattr(logging, level.upper())

    logger = logging.getLogger(LIBRARY_LOGGER_NAME)
    logger.setLevel(level)

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)

    if handler.formatter is None:
        handler.setFormatter(logging.Formatter(format_string))

    handler.setLevel(level)

    # Replace, don't accumulate, handlers on repeated calls
    logger.handlers.clear()
    logger.addHandler(handler)


def _setup_library_logging() -> None:
    """Attach a NullHandler to the zarrij logger if nothing is configured yet."""
    logger = logging.getLogger(LIBRARY_LOGGER_NAME)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())


_setup_library_logging()
