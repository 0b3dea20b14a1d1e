from .rounding import (
    RoundedAmounts,
    apply_slippage,
    minimum_buy_amount,
    round_order_amounts,
    round_price_to_tick,
    shares_for_amount,
    size_granularity,
    tick_scale,
)
from .verifier import BalanceVerifier
from .engine import OrderEngine
from .settlement import (
    build_redeem_call,
    complement_outcome,
    redemption_index_sets,
    resolve_position,
)
from .desk import TradingDesk

__all__ = [
    "RoundedAmounts",
    "apply_slippage",
    "minimum_buy_amount",
    "round_order_amounts",
    "round_price_to_tick",
    "shares_for_amount",
    "size_granularity",
    "tick_scale",
    "BalanceVerifier",
    "OrderEngine",
    "build_redeem_call",
    "complement_outcome",
    "redemption_index_sets",
    "resolve_position",
    "TradingDesk",
]
