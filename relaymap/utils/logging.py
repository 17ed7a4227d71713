# relaymap/utils/logging.py
from __future__ import annotations

import logging
import sys
from typing import Optional

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_ROOT = "relaymap"

_handler: Optional[logging.StreamHandler] = None


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def configure_logging(verbose: bool = False) -> logging.Handler:
    """
    Attach a single stderr handler to the package logger.

    Safe to call more than once; later calls adjust the level and re-point the
    handler at the current sys.stderr.
    """
    global _handler
    logger = logging.getLogger(_ROOT)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(logging.Formatter(_FORMAT))
    else:
        _handler.setStream(sys.stderr)
    if _handler not in logger.handlers:
        logger.addHandler(_handler)
    return _handler


def reset_logging() -> None:
    """Detach the handler added by configure_logging() and clear the level."""
    global _handler
    logger = logging.getLogger(_ROOT)
    if _handler is not None:
        logger.removeHandler(_handler)
        _handler = None
    logger.setLevel(logging.NOTSET)
