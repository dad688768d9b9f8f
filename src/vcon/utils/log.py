"""Logging setup.

Library modules log through ``logging.getLogger(__name__)``; the CLI calls
:func:`setup_logging` once to render records on stderr.
"""

import logging
import os

from rich.logging import RichHandler

from .output import console

DEBUG_ENV = "VCON_DEBUG"


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure the ``vcon`` logger.

    Args:
        verbose: Show progress messages (INFO)

    Returns:
        The package logger
    """
    if os.environ.get(DEBUG_ENV, "").lower() in ("1", "true", "yes"):
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logger = logging.getLogger("vcon")
    logger.setLevel(level)

    if not logger.handlers:
        handler = RichHandler(
            console=console,
            show_time=False,
            show_path=level <= logging.DEBUG,
            markup=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    return logger
