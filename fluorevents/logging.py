"""Logging utilities for fluorevents."""

import logging

from rich.logging import RichHandler

_ROOT = "fluorevents"


def init_logger(name: str, level: str = "INFO") -> logging.Logger:
    """Create a logger with rich console output.

    Parameters
    ----------
    name:
        Logger name (e.g. ``__name__``). Automatically namespaced
        under ``fluorevents.``.
    level:
        Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    if not name.startswith(_ROOT):
        name = f"{_ROOT}.{name}"

    # Initialise root logger once
    root = logging.getLogger(_ROOT)
    if not root.handlers:
        root.addHandler(RichHandler(rich_tracebacks=True, show_path=True))
        root.setLevel(logging.DEBUG)

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level, logging.INFO))
    return logger
