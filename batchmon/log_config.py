"""Logging setup shared by the CLI and the poll daemons."""

import logging

from rich.logging import RichHandler

_CONFIGURED = False


def configure_logging(level: str = "INFO") -> None:
    """Install a rich console handler on the root logger.

    Safe to call more than once; only the first call installs the handler,
    later calls just adjust the level.
    """
    global _CONFIGURED
    log_level = getattr(logging, level.upper(), logging.INFO)
    if not _CONFIGURED:
        logging.basicConfig(
            level=log_level,
            format="%(threadName)s: %(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        )
        _CONFIGURED = True
    logging.getLogger().setLevel(log_level)