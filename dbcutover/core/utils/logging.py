"""Logging utilities for dbcutover runtime components."""

from __future__ import annotations

import logging
import sys
from typing import Optional


_HANDLER_NAME = "_dbcutover_stream_handler"
_DEFAULT_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def configure_runtime_logging(level: int = logging.INFO, formatter: Optional[logging.Formatter] = None) -> None:
    """
    Make actor processes log to stdout, once.

    Calling this again only updates the level and format of the handler
    installed the first time.
    """
    root_logger = logging.getLogger()
    if formatter is None:
        formatter = logging.Formatter(_DEFAULT_FORMAT)

    existing = next((handler for handler in root_logger.handlers if getattr(handler, _HANDLER_NAME, False)), None)
    if existing is None:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        setattr(stream_handler, _HANDLER_NAME, True)
        root_logger.addHandler(stream_handler)
    else:
        existing.setFormatter(formatter)
        existing.setLevel(level)

    if root_logger.level > level or root_logger.level == logging.NOTSET:
        root_logger.setLevel(level)


def install_stdout_logger(level: int = logging.INFO, *, include_timestamp: bool = True, prefix: str = "dbcutover") -> logging.Logger:
    """Attach a stdout handler to the ``prefix`` logger, for demos and scripts."""
    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s" if include_timestamp else "%(levelname)s %(name)s: %(message)s"
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%H:%M:%S"))
    logger = logging.getLogger(prefix)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger
