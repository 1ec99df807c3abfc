# pyright: standard

"""restic-runner: restic_runner/__logger__.py
A common logger for displaying through rich.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

# Initialize basic console and handler
cons = Console(stderr=True)
rich_handler = RichHandler(console=cons, show_path=False)


def create_logger(level: str = "INFO") -> None:
    """Helper function to setup logging at the requested level."""
    # pylint: disable=global-statement
    global cons, rich_handler

    cons = Console(stderr=True)
    rich_handler = RichHandler(console=cons, show_path=False)

    logging.basicConfig(
        format="%(message)s",
        datefmt="%H:%M:%S",
        level=level,
        handlers=[rich_handler],
        force=True,
    )


def add_file_handler(path: str) -> logging.Handler:
    """Also write log records to a plain text file.

    Raises:
        OSError: If the file cannot be opened for appending
    """
    handler = logging.FileHandler(path)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    logging.getLogger().addHandler(handler)
    return handler


def remove_handler(handler: logging.Handler) -> None:
    """Detach a handler added by add_file_handler and close it."""
    logging.getLogger().removeHandler(handler)
    handler.close()
