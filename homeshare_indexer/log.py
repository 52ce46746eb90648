"""Logging configuration for the indexer."""

import logging
import sys
from typing import Optional

from homeshare_indexer.config import Config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DRY_RUN_LOG_FORMAT = "%(asctime)s - [dry-run] %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("web3", "urllib3", "sqlalchemy.engine", "eth_abi")


def setup_logging(config: Optional[Config] = None, log_level: Optional[str] = None) -> None:
    """Configure Python logging for the indexer process.

    Args:
        config: Config object (log level and dry-run tag are taken from it)
        log_level: Override log level (takes precedence over config)
    """
    level_name = (log_level or (config.log_level if config else "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    dry_run = bool(config and config.dry_run)
    logging.basicConfig(
        level=level,
        format=DRY_RUN_LOG_FORMAT if dry_run else LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stdout,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
