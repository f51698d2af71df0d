"""Logging setup shared by the library and the command line entry point."""

import logging

from rich.console import Console
from rich.logging import RichHandler

CONSOLE = Console()

LOG_FORMAT = "%(name)s: %(message)s"


def configure_logging(level: int | str = logging.INFO, console: Console | None = None) -> None:
    """Route ``surveysim`` log records through a rich console handler.

    Library modules only create loggers with ``logging.getLogger(__name__)``;
    applications call this once at start-up. Calling it again replaces the
    previously installed handler instead of stacking a second one.

    Args:
        level: Level applied to the ``surveysim`` logger.
        console: Console to render on. Defaults to the shared ``CONSOLE``.
    """
    handler = RichHandler(
        console=console or CONSOLE,
        rich_tracebacks=True,
        show_path=False,
        log_time_format="[%X]",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger("surveysim")
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False
