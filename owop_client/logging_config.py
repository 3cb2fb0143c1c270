"""
Logging configuration for the client.

Every module logs under the `owop_client` namespace; `setup_logging` decides
where those records go. Sessions tag their records with the player id through
`ClientLogAdapter` so several clients can share one log.
"""

import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

ROOT_LOGGER_NAME = "owop_client"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Configure logging for the client.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR). Uses config if not specified.
        log_file: Optional path to log file
        log_to_console: Whether to log to console

    Returns:
        The root logger for the client
    """
    if log_level is None:
        from .config import get_config
        debug = get_config().debug
        log_level = debug.log_level
        log_file = log_file or debug.log_file

    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers: List[logging.Handler] = []
    if log_to_console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    # Drop handlers from an earlier setup
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger for a specific module."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class ClientLogAdapter(logging.LoggerAdapter):
    """Prefix every message with the id of the client that logged it."""

    def __init__(self, logger: logging.Logger, get_id: Callable[[], Optional[object]]):
        super().__init__(logger, {})
        self._get_id = get_id

    def process(self, msg, kwargs):
        client_id = self._get_id()
        prefix = f"[{client_id}]" if client_id is not None else "[?]"
        return f"{prefix} {msg}", kwargs
