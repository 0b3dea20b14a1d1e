"""
safe-trader: trading sessions and order construction for the Polymarket CLOB
through a derived Safe wallet
"""

from .base.errors import (
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
from .base.config import TradingConfig, load_config, load_private_key

from .models.order import OrderRequest, OrderResult, OrderSide, OrderType
from .models.session import ApiCredentials, ErrorKind, SessionStep, TradingSession
from .models.position import ResolvedPosition

from .chain import ChainReader, derive_safe_address
from .gateway import ClobGateway, PositionsClient, SafeRelayer
from .session import SessionStore, TradingSessionMachine
from .trading import BalanceVerifier, OrderEngine, TradingDesk, resolve_position
from .wallet import LocalAccountWallet, WalletAdapter


__version__ = "0.1.0"

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
    "OrderRequest",
    "OrderResult",
    "OrderSide",
    "OrderType",
    "ApiCredentials",
    "ErrorKind",
    "SessionStep",
    "TradingSession",
    "ResolvedPosition",
    "ChainReader",
    "derive_safe_address",
    "ClobGateway",
    "PositionsClient",
    "SafeRelayer",
    "SessionStore",
    "TradingSessionMachine",
    "BalanceVerifier",
    "OrderEngine",
    "TradingDesk",
    "resolve_position",
    "LocalAccountWallet",
    "WalletAdapter",
]
