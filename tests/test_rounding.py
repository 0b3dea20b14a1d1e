"""Tests for price and size rounding"""

from decimal import Decimal

import pytest

from safe_trader.base.errors import InvalidOrder
from safe_trader.models.order import OrderSide
from safe_trader.trading.rounding import (
    apply_slippage,
    minimum_buy_amount,
    round_order_amounts,
    round_price_to_tick,
    shares_for_amount,
    size_granularity,
    tick_scale,
)


class TestTickScale:
    def test_tick_scale(self):
        assert tick_scale("0.1") == 10
        assert tick_scale("0.01") == 100
        assert tick_scale("0.001") == 1000
        assert tick_scale("0.0001") == 10000

    def test_invalid_tick_size(self):
        with pytest.raises(InvalidOrder, match="Invalid tick size"):
            tick_scale("0.05")


class TestRoundPrice:
    def test_rounds_half_up(self):
        assert round_price_to_tick(0.555, "0.01") == 56
        assert round_price_to_tick(0.554, "0.01") == 55

    def test_clamped_inside_unit_interval(self):
        assert round_price_to_tick(0.999, "0.01") == 99
        assert round_price_to_tick(0.001, "0.01") == 1

    def test_finer_tick(self):
        assert round_price_to_tick(0.1234, "0.001") == 123


class TestRoundOrderAmounts:
    def test_buy_amounts_on_granularity(self):
        # #given
        price_ticks = 50

        # #when
        amounts = round_order_amounts(OrderSide.BUY, price_ticks, 10.013, "0.01")

        # #then
        assert amounts.size_raw == 10_000_000
        assert amounts.maker_amount == 5_000_000
        assert amounts.taker_amount == 10_000_000
        assert amounts.price == 0.5
        assert amounts.collateral_amount == 5_000_000

    def test_buy_at_awkward_price_floors_to_whole_shares(self):
        amounts = round_order_amounts(OrderSide.BUY, 57, 3.7, "0.01")

        assert amounts.size_raw == 3_000_000
        assert amounts.maker_amount == 1_710_000
        assert amounts.maker_amount % 10_000 == 0
        assert amounts.taker_amount % 10 == 0

    def test_sell_amounts_on_granularity(self):
        amounts = round_order_amounts(OrderSide.SELL, 57, 12.345, "0.01")

        assert amounts.maker_amount == 12_340_000
        assert amounts.taker_amount == 7_033_800
        assert amounts.maker_amount % 10_000 == 0
        assert amounts.taker_amount % 10 == 0
        assert amounts.collateral_amount == 7_033_800

    @pytest.mark.parametrize("price_ticks", [1, 7, 33, 50, 57, 99])
    def test_every_price_keeps_both_amounts_valid(self, price_ticks):
        buy = round_order_amounts(OrderSide.BUY, price_ticks, 123.456789, "0.01")
        sell = round_order_amounts(OrderSide.SELL, price_ticks, 123.456789, "0.01")

        assert buy.maker_amount % 10_000 == 0
        assert buy.taker_amount % 10 == 0
        assert sell.maker_amount % 10_000 == 0
        assert sell.taker_amount % 10 == 0

    def test_never_rounds_size_up(self):
        amounts = round_order_amounts(OrderSide.SELL, 50, 5.999999, "0.01")

        assert amounts.size_raw <= 5_999_999

    def test_too_small_size_raises(self):
        with pytest.raises(InvalidOrder, match="Minimum is 0.02 shares"):
            round_order_amounts(OrderSide.BUY, 50, 0.004, "0.01")

    def test_granularity_uses_both_constraints(self):
        assert size_granularity(OrderSide.BUY, 50, 100) == 20_000
        assert size_granularity(OrderSide.BUY, 57, 100) == 1_000_000
        assert size_granularity(OrderSide.SELL, 60, 100) == 10_000
        assert size_granularity(OrderSide.SELL, 57, 100) == 10_000

    def test_aligned_sell_is_unchanged(self):
        amounts = round_order_amounts(OrderSide.SELL, 30, 10, "0.01")

        assert amounts.size_raw == 10_000_000
        assert amounts.taker_amount == 3_000_000


class TestMarketHelpers:
    def test_shares_for_amount(self):
        assert shares_for_amount(10, 50, "0.01") == Decimal("20")

    def test_minimum_buy_amount(self):
        assert minimum_buy_amount(50, "0.01", 1.0) == Decimal("1")
        assert minimum_buy_amount(57, "0.01", 1.0) == Decimal("1.14")

    def test_buy_slippage_capped(self):
        assert apply_slippage(OrderSide.BUY, 0.5) == pytest.approx(0.51)
        assert apply_slippage(OrderSide.BUY, 0.98) == 0.99

    def test_sell_slippage_with_floor(self):
        assert apply_slippage(OrderSide.SELL, 0.5) == pytest.approx(0.45)
        assert apply_slippage(OrderSide.SELL, 0.05) == pytest.approx(0.04)
        assert apply_slippage(OrderSide.SELL, 0.015) == 0.01
