"""Utility functions and helpers for safe-trader."""

from .logger import setup_logger, set_verbose, ColoredFormatter, default_logger
from .cache import CacheInvalidator, BALANCES, POSITIONS, ORDERS

__all__ = [
    'setup_logger',
    'set_verbose',
    'ColoredFormatter',
    'default_logger',
    'CacheInvalidator',
    'BALANCES',
    'POSITIONS',
    'ORDERS',
]
