"""Logging configuration for the dotsync command line."""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV_VAR = "DOTSYNC_LOG_LEVEL"


def setup_logging(debug: bool = False) -> None:
    """Configure the ``dotsync`` logger tree to write to stderr.

    ``debug`` forces DEBUG. Otherwise ``$DOTSYNC_LOG_LEVEL`` picks the level,
    falling back to WARNING.
    """

    if debug:
        level = logging.DEBUG
    else:
        env_level = os.getenv(LOG_LEVEL_ENV_VAR, "WARNING").upper()
        level = getattr(logging, env_level, logging.WARNING)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=debug,
        rich_tracebacks=debug,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    logger = logging.getLogger("dotsync")
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
