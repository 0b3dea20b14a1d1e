from .store import SessionStore
from .machine import TradingSessionMachine

__all__ = ["SessionStore", "TradingSessionMachine"]
