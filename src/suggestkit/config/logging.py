"""Logging setup for the command line."""

from __future__ import annotations

import logging
import sys

# libraries that log every request at INFO
_CHATTY_LOGGERS = ("httpx", "httpcore")


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Send log records to stderr so stdout stays reserved for result JSON.

    Per-request HTTP logging only shows up at DEBUG. Pass ``force=True`` to
    reconfigure a logger that is already set up, as tests do.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
        force=force,
    )
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)
