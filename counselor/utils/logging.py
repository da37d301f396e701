"""Shared logging setup."""

from __future__ import annotations

import logging
import sys

from counselor.observability.logging import StructuredFormatter

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: int | str = logging.INFO, *, structured: bool = False) -> None:
    """Configure the root logger with a single stdout handler.

    Args:
        level: Logging level, as a number or a name such as "DEBUG".
        structured: Emit JSON records via StructuredFormatter instead of plain text.
    """
    handler = logging.StreamHandler(sys.stdout)
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))

    root = logging.getLogger()
    # Replace existing handlers to avoid duplicate output
    root.handlers = [handler]
    root.setLevel(level)
