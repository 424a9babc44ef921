"""Logging for the ``finance_tracker`` package.

Entrypoints (``create_app`` and the CLI) call ``configure_logging`` once;
library modules only ask for ``get_logger("finance_tracker.<module>")``.
"""

from __future__ import annotations

import logging
import os
from typing import Optional, Union

PACKAGE_LOGGER = "finance_tracker"
LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def resolve_level(level: Union[int, str, None] = None) -> int:
    """Level from ``level``, else ``FINANCE_TRACKER_LOG_LEVEL``, else INFO.

    Unknown names are ignored rather than rejected.
    """

    for candidate in (level, os.getenv("FINANCE_TRACKER_LOG_LEVEL")):
        if isinstance(candidate, int):
            return candidate
        if isinstance(candidate, str) and candidate.strip():
            name = candidate.strip().upper()
            value = int(name) if name.isdecimal() else logging.getLevelName(name)
            if isinstance(value, int):
                return value
    return logging.INFO


def configure_logging(level: Union[int, str, None] = None) -> None:
    logger = logging.getLogger(PACKAGE_LOGGER)
    if any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        return
    for h in list(logger.handlers):
        logger.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(resolve_level(level))
    logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    package = logging.getLogger(PACKAGE_LOGGER)
    if not package.handlers:
        package.addHandler(logging.NullHandler())
    return logging.getLogger(name)
