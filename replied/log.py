"""Logging setup shared by the whole client.

The textual UI owns the terminal, so debug output goes to
``~/.replied_debug.log`` when REPLIED_DEBUG is set.
"""
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

DEBUG_LOG_FILE = Path.home() / ".replied_debug.log"
_FORMAT = "[%(name)s] %(levelname)s: %(message)s"


def configure_logging(debug: bool | None = None) -> logging.Logger:
    """Attach handlers to the ``replied`` logger once and return it."""
    logger = logging.getLogger("replied")
    if debug is None:
        debug = bool(os.getenv("REPLIED_DEBUG"))
    level = logging.DEBUG if debug else logging.WARNING
    logger.setLevel(level)
    if logger.handlers:
        return logger

    stream = logging.StreamHandler(sys.stderr)
    stream.setLevel(level)
    stream.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(stream)

    if debug:
        try:
            fh = logging.FileHandler(DEBUG_LOG_FILE, encoding="utf-8")
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
            logger.addHandler(fh)
        except OSError:
            # never fail startup for logging issues
            logger.warning("could not open debug log file %s", DEBUG_LOG_FILE)
    return logger
