from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class OrderSide(Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(Enum):
    GTC = "GTC"  # Good till cancelled
    FOK = "FOK"  # Fill or kill
    GTD = "GTD"  # Good till date


class SignatureType(Enum):
    EOA = 0
    POLY_PROXY = 1
    POLY_GNOSIS_SAFE = 2


VALID_TICK_SIZES = ("0.1", "0.01", "0.001", "0.0001")


@dataclass
class OrderRequest:
    """
    A single trade action as entered by the user.

    For a market BUY, amount is the dollar amount to spend. For every other
    order, amount is the number of outcome shares.
    """

    token_id: str
    side: OrderSide
    amount: float
    price: Optional[float] = None
    is_market_order: bool = False
    tick_size: str = "0.01"
    neg_risk: bool = False


@dataclass
class OrderResult:
    success: bool
    order_id: Optional[str] = None
    error: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "OrderResult":
        return cls(success=False, error=error)


@dataclass
class OpenOrder:
    id: str
    asset_id: str
    market: str
    side: OrderSide
    price: float
    original_size: float
    size_matched: float
    status: str
    outcome: str = ""
    order_type: str = ""
    created_at: Optional[datetime] = None

    @property
    def remaining(self) -> float:
        return max(self.original_size - self.size_matched, 0.0)


@dataclass
class Trade:
    id: str
    asset_id: str
    market: str
    side: OrderSide
    price: float
    size: float
    status: str
    outcome: str = ""
    match_time: Optional[datetime] = None
    transaction_hash: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class OrderBook:
    token_id: str
    bids: List[Dict[str, float]] = field(default_factory=list)
    asks: List[Dict[str, float]] = field(default_factory=list)
    tick_size: Optional[str] = None
    neg_risk: Optional[bool] = None
