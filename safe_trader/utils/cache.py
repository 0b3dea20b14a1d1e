"""Invalidation hooks for cached balance, position and order queries."""

import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

BALANCES = "balances"
POSITIONS = "positions"
ORDERS = "orders"


class CacheInvalidator:
    """
    Fan-out of invalidation signals to whoever caches query results.

    Callers register a callback per query key; trading operations signal the
    keys whose data they changed so the next read goes back to the source.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[str], None]]] = {}

    def subscribe(self, key: str, callback: Callable[[str], None]) -> Callable[[], None]:
        """Register callback for key. Returns a function that removes it."""
        self._subscribers.setdefault(key, []).append(callback)

        def _unsubscribe():
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return _unsubscribe

    def invalidate(self, *keys: str) -> None:
        for key in keys:
            for callback in list(self._subscribers.get(key, [])):
                try:
                    callback(key)
                except Exception as e:
                    logger.warning(f"Invalidation callback for '{key}' failed: {e}")
