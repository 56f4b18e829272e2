"""
Scholar - Logging
==================
``get_logger(name)`` hands every module a stdout logger with the shared
pipe-separated format.

Level resolution, first match wins:
  1. the ``level`` argument,
  2. ``settings.LOG_LEVEL`` when set (e.g. ``LOG_LEVEL=INFO``),
  3. ``settings.ENV``: ``dev`` → DEBUG, ``prod`` → WARNING.

Stage tags (``[INGEST]``, ``[RAG]``, ``[SEARCH]`` …) go at the start of
the message, not into the logger name.

Usage:
    from scholar.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[INGEST] Paper %s completed", paper_id)
"""

import logging
import sys

from scholar.config.settings import settings

_LEVEL_BY_ENV = {"dev": logging.DEBUG, "prod": logging.WARNING}

_FORMATTER = logging.Formatter(fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


def _configured_level() -> int:
    if settings.LOG_LEVEL:
        return logging.getLevelName(settings.LOG_LEVEL.upper())
    return _LEVEL_BY_ENV.get(settings.ENV, logging.INFO)


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return the logger called *name*, attaching the stdout handler once.

    Loggers do not propagate, so records are never printed twice when
    the host application also configures the root logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved = level if level is not None else _configured_level()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_FORMATTER)
    handler.setLevel(resolved)

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False
    return logger
