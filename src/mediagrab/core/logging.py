from __future__ import annotations

import logging

from rich.logging import RichHandler

_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def configure_logging(verbosity: int = 0) -> None:
    """Install a rich console handler on the root logger.

    ``verbosity`` follows the CLI ``-v`` count: warnings by default, info with
    one flag, debug with two or more.
    """
    level = _LEVELS.get(verbosity, logging.DEBUG)
    handler = RichHandler(rich_tracebacks=True, show_path=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
