"""Logging setup."""

import sys
from pathlib import Path

from loguru import logger

_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> - <level>{message}</level>"


def setup_logging(level: str = "INFO", log_file: str | Path | None = None) -> None:
    """Route courier logs to stderr and, optionally, a rotating file."""
    logger.remove()
    logger.add(sys.stderr, level=level, format=_FORMAT)
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(path),
            level="DEBUG",
            rotation="10 MB",
            retention=5,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )
