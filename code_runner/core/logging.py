"""
Logging setup for code-runner.

Records go to stderr through rich so the stdio transport keeps stdout clean.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "code_runner"

_configured = False


def setup_logging(debug: bool = False, level: int | None = None) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        debug: Enable debug output and rich tracebacks with locals
        level: Explicit level overriding ``debug``

    Returns:
        The configured package logger
    """
    global _configured

    logger = logging.getLogger(ROOT_LOGGER)
    if level is None:
        level = logging.DEBUG if debug else logging.WARNING
    logger.setLevel(level)

    if not _configured:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=debug,
            rich_tracebacks=True,
            tracebacks_show_locals=debug,
        )
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        logger.addHandler(handler)
        logger.propagate = False
        _configured = True

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the package namespace."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
