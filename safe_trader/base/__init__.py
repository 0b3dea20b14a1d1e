from .errors import (
    SafeTraderError,
    ExchangeError,
    NetworkError,
    RateLimitError,
    AuthenticationError,
    InsufficientFunds,
    InvalidOrder,
    MarketNotFound,
    UserRejectedError,
    WrongNetworkError,
    StaleCredentialsError,
    SessionError,
    RelayerError,
)
from .config import TradingConfig, load_config, load_private_key, validate_private_key

__all__ = [
    "SafeTraderError",
    "ExchangeError",
    "NetworkError",
    "RateLimitError",
    "AuthenticationError",
    "InsufficientFunds",
    "InvalidOrder",
    "MarketNotFound",
    "UserRejectedError",
    "WrongNetworkError",
    "StaleCredentialsError",
    "SessionError",
    "RelayerError",
    "TradingConfig",
    "load_config",
    "load_private_key",
    "validate_private_key",
]
