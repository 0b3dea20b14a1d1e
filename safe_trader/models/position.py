from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class PositionData:
    """Raw position as reported by the data API."""

    asset: str
    condition_id: str
    outcome: str
    outcome_index: int
    size: float
    avg_price: float = 0.0
    cur_price: float = 0.0
    initial_value: float = 0.0
    current_value: float = 0.0
    title: str = ""
    slug: str = ""
    redeemable: bool = False
    negative_risk: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "PositionData":
        return cls(
            asset=str(data.get("asset", "")),
            condition_id=data.get("conditionId", ""),
            outcome=data.get("outcome", ""),
            outcome_index=int(data.get("outcomeIndex", 0) or 0),
            size=float(data.get("size", 0) or 0),
            avg_price=float(data.get("avgPrice", 0) or 0),
            cur_price=float(data.get("curPrice", 0) or 0),
            initial_value=float(data.get("initialValue", 0) or 0),
            current_value=float(data.get("currentValue", 0) or 0),
            title=data.get("title", ""),
            slug=data.get("slug", ""),
            redeemable=bool(data.get("redeemable", False)),
            negative_risk=bool(data.get("negativeRisk", False)),
        )


@dataclass
class MarketInfo:
    """Market resolution metadata from the Gamma API."""

    condition_id: str = ""
    question: str = ""
    closed: bool = False
    resolved: bool = False
    outcomes: List[str] = field(default_factory=list)
    outcome_prices: List[float] = field(default_factory=list)
    clob_token_ids: List[str] = field(default_factory=list)
    winning_outcome: Optional[str] = None
    end_date: Optional[str] = None


@dataclass
class ResolvedPosition:
    condition_id: str
    outcome_index: int
    outcome: str
    token_id: str
    size: float
    avg_price: float
    current_price: float
    resolved: bool
    winning_outcome: Optional[str]
    is_winner: bool
    payout: float
    negative_risk: bool = False
    title: str = ""

    @property
    def value(self) -> float:
        return self.size * self.current_price

    @property
    def pnl(self) -> float:
        return self.value - self.size * self.avg_price

    @property
    def is_determined(self) -> bool:
        return self.resolved and self.winning_outcome is not None

    @property
    def redeemable(self) -> bool:
        """Only a determined winner with something to collect may be redeemed"""
        return self.is_determined and self.is_winner and self.payout > 0


@dataclass
class BalanceSnapshot:
    """On-chain balances in raw 6-decimal units."""

    wallet_collateral: int
    derived_wallet_collateral: int
    allowance_to_exchange: int
    position_balance: Optional[int] = None
    token_id: Optional[str] = None


@dataclass
class VerificationResult:
    ok: bool
    reason: Optional[str] = None
