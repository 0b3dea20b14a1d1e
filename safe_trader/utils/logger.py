"""Shared logger configuration for safe-trader."""

import logging
import sys
from datetime import datetime


class ColoredFormatter(logging.Formatter):
    """Formatter with colored timestamps and level symbols"""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'TIMESTAMP': '\033[90m',  # Gray
        'RESET': '\033[0m'
    }

    SYMBOLS = {
        'WARNING': '⚠️ ',
        'ERROR': '❌',
        'CRITICAL': '🔥'
    }

    def format(self, record):
        reset = self.COLORS['RESET']
        timestamp_color = self.COLORS['TIMESTAMP']
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        message = record.getMessage()

        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        symbol = self.SYMBOLS.get(record.levelname)
        if symbol is None:
            return f"{timestamp_color}[{timestamp}]{reset} {message}"

        color = self.COLORS.get(record.levelname, '')
        return f"{timestamp_color}[{timestamp}]{reset} {color}{symbol}{reset} {message}"


def setup_logger(name: str = None, level: int = logging.INFO) -> logging.Logger:
    """
    Create a configured logger with colored output.

    Args:
        name: Logger name (default: root logger)
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance

    Example:
        >>> from safe_trader.utils.logger import setup_logger
        >>> logger = setup_logger("safe_trader", logging.DEBUG)
        >>> logger.info("Starting...")
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter())
    logger.addHandler(console_handler)

    logger.propagate = False

    return logger


def set_verbose(verbose: bool) -> None:
    """Switch the package logger between INFO and DEBUG."""
    default_logger.setLevel(logging.DEBUG if verbose else logging.INFO)


# Package logger; module loggers created with logging.getLogger(__name__) report through it
default_logger = setup_logger('safe_trader')
