from .order import (
    OrderSide,
    OrderType,
    SignatureType,
    OrderRequest,
    OrderResult,
    OpenOrder,
    Trade,
    OrderBook,
    VALID_TICK_SIZES,
)
from .session import (
    ApiCredentials,
    TradingSession,
    SessionStep,
    ErrorKind,
    SessionState,
    Disconnected,
    Connect,
    Initialize,
    Complete,
    Error,
)
from .position import (
    PositionData,
    MarketInfo,
    ResolvedPosition,
    BalanceSnapshot,
    VerificationResult,
)

__all__ = [
    "OrderSide",
    "OrderType",
    "SignatureType",
    "OrderRequest",
    "OrderResult",
    "OpenOrder",
    "Trade",
    "OrderBook",
    "VALID_TICK_SIZES",
    "ApiCredentials",
    "TradingSession",
    "SessionStep",
    "ErrorKind",
    "SessionState",
    "Disconnected",
    "Connect",
    "Initialize",
    "Complete",
    "Error",
    "PositionData",
    "MarketInfo",
    "ResolvedPosition",
    "BalanceSnapshot",
    "VerificationResult",
]
