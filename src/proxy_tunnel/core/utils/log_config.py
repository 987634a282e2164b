"""Logging configuration for the proxy tunnel client.

This module provides centralized logging configuration using Loguru.
Library modules log through ``loguru.logger`` directly; the CLI calls
``setup_logging`` to send records to the console and to a rotating log file.
"""

import sys
from pathlib import Path

from loguru import logger

# Logs directory in user's home directory
LOG_DIR = Path.home() / ".proxy-tunnel" / "logs"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(debug: bool = False, log_dir: Path | None = LOG_DIR) -> None:
    """Configure console and file logging.

    Args:
        debug: Log DEBUG records to the console instead of WARNING and above
        log_dir: Directory for the rotating log file, or None to skip it
    """
    logger.remove()  # Remove default handler

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level="DEBUG" if debug else "WARNING",
        backtrace=True,
        diagnose=debug,
    )

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "tunnel.log",
            rotation="10 MB",
            retention="1 week",
            compression="zip",
            format=FILE_FORMAT,
            level="DEBUG",
            backtrace=True,
            diagnose=False,
        )


__all__ = ["LOG_DIR", "logger", "setup_logging"]
