"""Logging configuration for entry-tree."""

import sys
from typing import TextIO

from loguru import logger


def configure_logging(*, verbose: bool = False, sink: TextIO | None = None) -> None:
    """Route loguru to stderr (or `sink`) at INFO, or DEBUG when verbose.

    The MCP server talks over stdout, so logs must never go there.
    """
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    fmt = "{level.icon} {name}: {message}" if verbose else "{level.icon} {message}"
    logger.add(sink or sys.stderr, level=level, format=fmt)
