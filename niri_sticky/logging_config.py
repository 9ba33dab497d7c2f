"""Logging configuration for niri-sticky.

Provides:
- Configurable log levels (WARNING, INFO, DEBUG)
- niri IPC and subprocess call logging
- Colored terminal output
"""

import logging
import sys
from typing import Any, Optional


# Default log format
DEFAULT_FORMAT = "%(levelname)s: %(message)s"
VERBOSE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEBUG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"

LOGGER_NAME = "niri_sticky"


class ColoredFormatter(logging.Formatter):
    """Colored log formatter for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        """Format log record with colors."""
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logging(
    verbose: bool = False,
    debug: bool = False,
    level: Optional[str] = None,
) -> logging.Logger:
    """Configure logging for niri-sticky.

    Args:
        verbose: Enable verbose logging (INFO level)
        debug: Enable debug logging (DEBUG level)
        level: Explicit level name, used when neither flag is set

    Returns:
        Configured package logger

    Examples:
        >>> logger = setup_logging(verbose=True)
        >>> logger.info("Starting daemon")
        2026-10-19 10:30:45 [INFO] niri_sticky: Starting daemon
    """
    logger = logging.getLogger(LOGGER_NAME)

    # Remove existing handlers
    logger.handlers.clear()

    if debug:
        logger.setLevel(logging.DEBUG)
        log_format = DEBUG_FORMAT
    elif verbose:
        logger.setLevel(logging.INFO)
        log_format = VERBOSE_FORMAT
    elif level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        log_format = DEBUG_FORMAT if logger.level <= logging.DEBUG else VERBOSE_FORMAT
    else:
        logger.setLevel(logging.WARNING)
        log_format = DEFAULT_FORMAT

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logger.level)

    # Use colored formatter if terminal supports it
    if sys.stderr.isatty():
        formatter = ColoredFormatter(log_format)
    else:
        formatter = logging.Formatter(log_format)

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def log_subprocess_call(cmd: list, returncode: int, stdout: bytes, stderr: bytes,
                        logger: logging.Logger) -> None:
    """Log a finished 'niri msg' invocation at DEBUG level."""
    logger.debug(f"Subprocess call: {' '.join(cmd)}")
    logger.debug(f"  Return code: {returncode}")

    if stdout:
        logger.debug(f"  stdout: {stdout.decode(errors='replace')[:200]}")

    if stderr:
        logger.debug(f"  stderr: {stderr.decode(errors='replace')[:200]}")


def log_ipc_message(direction: str, payload: Any, logger: logging.Logger) -> None:
    """Log a niri IPC message at DEBUG level.

    Args:
        direction: "send" or "recv"
        payload: Message payload
        logger: Logger instance
    """
    logger.debug(f"niri IPC {direction}: {str(payload)[:500]}")
