"""Centralized logging configuration using loguru."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

# Remove default handler
logger.remove()

# Add console handler with INFO level
_console_handler_id = logger.add(
    sys.stderr,
    level="INFO",
    format=CONSOLE_FORMAT,
    colorize=True,
)


def get_logger(name: Optional[str] = None):
    """Get a logger instance with the given name.

    Args:
        name: Module name for the logger (usually __name__)

    Returns:
        Configured logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger


def set_console_level(level: str) -> None:
    """Replace the console handler with one at the given level."""
    global _console_handler_id
    logger.remove(_console_handler_id)
    _console_handler_id = logger.add(
        sys.stderr,
        level=level.upper(),
        format=CONSOLE_FORMAT,
        colorize=True,
    )


def configure_file_logging(logs_dir: Union[str, Path], level: str = "DEBUG") -> Path:
    """Add rotating file handlers under logs_dir.

    The model never writes files on its own; applications that want
    persistent logs call this once at startup.

    Returns:
        The resolved logs directory
    """
    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger.add(
        logs_dir / "trackmodel_{time}.log",
        rotation="50 MB",
        retention="10 days",
        level=level.upper(),
        format=FILE_FORMAT,
        enqueue=True,  # Thread-safe logging
    )

    # Add error-specific log file
    logger.add(
        logs_dir / "errors_{time}.log",
        rotation="10 MB",
        retention="30 days",
        level="ERROR",
        format=FILE_FORMAT,
        enqueue=True,
    )
    return logs_dir


__all__ = ["logger", "get_logger", "set_console_level", "configure_file_logging"]
