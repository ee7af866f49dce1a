"""Logging configuration for applications embedding firestore_rest.

The library itself only creates module loggers; call ``setup_logging`` from
the host application (or a script) to get output.
"""

import logging
import sys

from firestore_rest.core.config import get_settings


def setup_logging(debug: bool | None = None) -> None:
    """Configure process-wide logging.

    Level is DEBUG when ``debug`` is True (default: settings.debug),
    otherwise INFO. Output goes to stdout.
    """
    if debug is None:
        debug = get_settings().debug
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name.

    Args:
        name: Usually __name__ of the calling module.
    """
    return logging.getLogger(name)
