"""
Logging configuration.

Routes the package's standard-library loggers through rich.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "claude_radar"


def configure_logging(level: int = logging.WARNING, console: Optional[Console] = None) -> logging.Logger:
    """Attach a RichHandler to the package logger.

    Calling it again replaces the previous handler instead of stacking.

    Args:
        level: Logging level for the package logger
        console: Console to render to (stderr by default)

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return package_logger
