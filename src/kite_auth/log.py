"""Stderr logger for the login run.

Credentials never go through this logger; OTP values only at DEBUG.
"""

import logging
import sys

_handler = logging.StreamHandler(sys.stderr)
_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))

logger = logging.getLogger("kite_auth")
logger.addHandler(_handler)
logger.setLevel(logging.INFO)


def configure_logging(level: str = "INFO") -> None:
    """Set the logger level from a level name such as ``DEBUG``."""
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        logger.warning("Unknown LOG_LEVEL %r, keeping INFO", level)
        resolved = logging.INFO
    logger.setLevel(resolved)


def debug_detail(message: str) -> None:
    logger.debug(message)
