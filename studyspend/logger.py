"""
Application logging setup.

All modules get their logger from ``setup_logger`` so format, level and
handler are configured in one place.
"""

import logging
import sys
from logging import Logger, StreamHandler
from typing import Final, Optional

LOG_FORMAT: Final[str] = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LOG_LEVELS: Final[dict[str, int]] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def setup_logger(name: str = "studyspend", level: Optional[str] = None) -> Logger:
    """
    Return a named logger, configuring the root handler on first use.

    Parameters
    ----------
    name : str
        Logger name, normally ``__name__`` of the calling module.
    level : str, optional
        "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL" (any case). When
        given, the root configuration is replaced with this level; unknown
        values fall back to INFO.
    """
    root = logging.getLogger()
    if level is not None or not root.handlers:
        logging.basicConfig(
            level=_LOG_LEVELS.get((level or "INFO").upper(), logging.INFO),
            format=LOG_FORMAT,
            handlers=[StreamHandler(sys.stdout)],
            force=level is not None,
        )
    return logging.getLogger(name)
