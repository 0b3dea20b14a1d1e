"""
Price and size rounding for exchange-valid orders.

Amounts are integers in 6-decimal units. The exchange only accepts a BUY when
its collateral (maker) amount is a whole number of cents and its share
(taker) amount is a multiple of 10 units; a SELL needs a share (maker) amount
in whole hundredths and a collateral (taker) amount that is a multiple of 10
units. Sizes are floored to the smallest step that satisfies both for the
given price.
"""

import math
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Union

from ..base.errors import InvalidOrder
from ..chain.contracts import COLLATERAL_UNIT
from ..models.order import VALID_TICK_SIZES, OrderSide

BUY_MAKER_GRANULARITY = 10_000
BUY_TAKER_GRANULARITY = 10
SELL_MAKER_GRANULARITY = 10_000
SELL_TAKER_GRANULARITY = 10

Number = Union[int, float, Decimal]


@dataclass(frozen=True)
class RoundedAmounts:
    side: OrderSide
    price_ticks: int
    scale: int
    size_raw: int
    maker_amount: int
    taker_amount: int
    granularity: int

    @property
    def price(self) -> float:
        return float(Decimal(self.price_ticks) / self.scale)

    @property
    def size(self) -> float:
        return float(Decimal(self.size_raw) / COLLATERAL_UNIT)

    @property
    def collateral_amount(self) -> int:
        """Collateral side of the order in raw units"""
        return self.maker_amount if self.side == OrderSide.BUY else self.taker_amount


def _decimal(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def tick_scale(tick_size: str) -> int:
    """Number of ticks in one dollar (100 for a 0.01 tick)."""
    if str(tick_size) not in VALID_TICK_SIZES:
        raise InvalidOrder(f"Invalid tick size: {tick_size}. Expected one of {VALID_TICK_SIZES}")
    return int(Decimal(1) / Decimal(str(tick_size)))


def round_price_to_tick(price: Number, tick_size: str) -> int:
    """
    Round price to the nearest tick, clamped to [1 tick, 1 - 1 tick].

    Returns:
        Price in ticks
    """
    scale = tick_scale(tick_size)
    ticks = int((_decimal(price) * scale).to_integral_value(rounding=ROUND_HALF_UP))
    return min(max(ticks, 1), scale - 1)


def size_granularity(side: OrderSide, price_ticks: int, scale: int) -> int:
    """Smallest raw size step keeping both order amounts on their granularity."""
    if side == OrderSide.BUY:
        base = BUY_MAKER_GRANULARITY * scale
        step = base // math.gcd(price_ticks, base)
        return math.lcm(step, BUY_TAKER_GRANULARITY)

    base = SELL_TAKER_GRANULARITY * scale
    step = base // math.gcd(price_ticks, base)
    return math.lcm(step, SELL_MAKER_GRANULARITY)


def round_order_amounts(
    side: OrderSide, price_ticks: int, size: Number, tick_size: str
) -> RoundedAmounts:
    """
    Floor size to the valid granularity and compute maker/taker amounts.

    Args:
        side: Order side
        price_ticks: Price already rounded to the tick
        size: Requested size in shares
        tick_size: Market tick size

    Raises:
        InvalidOrder: If the floored size is zero
    """
    scale = tick_scale(tick_size)
    granularity = size_granularity(side, price_ticks, scale)

    requested_raw = int((_decimal(size) * COLLATERAL_UNIT).to_integral_value(rounding=ROUND_DOWN))
    size_raw = (requested_raw // granularity) * granularity

    if size_raw <= 0:
        minimum = (Decimal(granularity) / COLLATERAL_UNIT).normalize()
        raise InvalidOrder(f"Order size too small. Minimum is {minimum:f} shares at this price.")

    collateral = size_raw * price_ticks // scale
    if side == OrderSide.BUY:
        maker_amount, taker_amount = collateral, size_raw
    else:
        maker_amount, taker_amount = size_raw, collateral

    return RoundedAmounts(
        side=side,
        price_ticks=price_ticks,
        scale=scale,
        size_raw=size_raw,
        maker_amount=maker_amount,
        taker_amount=taker_amount,
        granularity=granularity,
    )


def shares_for_amount(amount: Number, price_ticks: int, tick_size: str) -> Decimal:
    """Shares a dollar amount buys at price."""
    scale = tick_scale(tick_size)
    return _decimal(amount) * scale / price_ticks


def minimum_buy_amount(price_ticks: int, tick_size: str, min_notional: Number) -> Decimal:
    """Smallest dollar amount whose rounded BUY reaches min_notional at price."""
    scale = tick_scale(tick_size)
    granularity = size_granularity(OrderSide.BUY, price_ticks, scale)
    min_collateral = int((_decimal(min_notional) * COLLATERAL_UNIT).to_integral_value(rounding=ROUND_HALF_UP))

    min_size_raw = -(-min_collateral * scale // price_ticks)
    min_size_raw = -(-min_size_raw // granularity) * granularity
    return Decimal(min_size_raw * price_ticks // scale) / COLLATERAL_UNIT


def apply_slippage(
    side: OrderSide,
    market_price: float,
    buy_slippage: float = 0.02,
    sell_slippage: float = 0.10,
    min_sell_slippage: float = 0.01,
) -> float:
    """
    Move a quoted market price against the taker.

    BUY pays up to buy_slippage more, capped at 0.99. SELL accepts
    sell_slippage less (at least min_sell_slippage), floored at 0.01.
    """
    if side == OrderSide.BUY:
        return min(0.99, market_price * (1 + buy_slippage))

    slippage = max(market_price * sell_slippage, min_sell_slippage)
    return max(0.01, market_price - slippage)
