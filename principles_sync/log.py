"""Logging setup — stdlib loggers rendered through rich on stderr."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_LOGGER_NAME = "principles_sync"

stderr_console = Console(stderr=True)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger under the principles_sync hierarchy."""
    if not name:
        return logging.getLogger(_LOGGER_NAME)
    if name == _LOGGER_NAME or name.startswith(_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")


def configure_logging(*, verbose: bool = False, console: Console | None = None) -> logging.Logger:
    """Attach a single RichHandler to the package logger.

    Progress messages are DEBUG/INFO and only show with ``verbose``;
    warnings and errors always show.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Repeated CLI invocations in one process (tests) must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = RichHandler(
        console=console or stderr_console,
        show_time=verbose,
        show_path=False,
        rich_tracebacks=verbose,
        markup=False,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    return logger
