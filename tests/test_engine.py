"""Tests for the order construction engine"""

import itertools
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest

from safe_trader.base.config import TradingConfig
from safe_trader.base.errors import ExchangeError, InvalidOrder, NetworkError, UserRejectedError
from safe_trader.models.order import OrderRequest, OrderSide, OrderType
from safe_trader.models.position import VerificationResult
from safe_trader.trading.engine import AMBIGUOUS_RESPONSE, OrderEngine
from safe_trader.utils.cache import BALANCES, ORDERS, POSITIONS, CacheInvalidator

TOKEN_ID = "71321045679252212594626385532706912750332728571942532289631379312455583992563"

_signatures = itertools.count()


def signed_order(token_id, price, size, side, tick_size="0.01", neg_risk=False):
    return SimpleNamespace(token_id=token_id, price=price, size=size, signature=f"0x{next(_signatures):0130x}")


def make_engine(market_price=0.5, post_response=None, verification=None, invalidator=None, **kwargs):
    clob = Mock()
    clob.calculate_market_price = AsyncMock(return_value=market_price)
    clob.create_order = AsyncMock(side_effect=signed_order)
    clob.post_order = AsyncMock(
        return_value=post_response if post_response is not None else {"success": True, "orderID": "0xorder"}
    )
    clob.cancel_order = AsyncMock(return_value={"canceled": ["0xorder"], "not_canceled": {}})
    clob.cancel_all = AsyncMock(return_value={"canceled": []})

    verifier = Mock()
    verifier.verify = AsyncMock(return_value=verification or VerificationResult(ok=True))

    engine = OrderEngine(clob, verifier, TradingConfig(), invalidator, **kwargs)
    return engine, clob, verifier


def order_values(clob):
    token_id, price, size, side = clob.create_order.call_args.args
    return price, size, side


class TestMarketOrders:
    @pytest.mark.asyncio
    async def test_hundred_dollar_buy_at_sixty_four_cents(self):
        engine, clob, verifier = make_engine(market_price=0.64)
        request = OrderRequest(TOKEN_ID, OrderSide.BUY, amount=100.0, is_market_order=True)

        result = await engine.build_and_submit_order(request)

        assert result.success
        assert order_values(clob) == (0.65, 153.8, OrderSide.BUY)
        verifier.verify.assert_awaited_once_with(OrderSide.BUY, TOKEN_ID, 99.97, False)
        assert clob.post_order.call_args.args[1] == OrderType.FOK

    @pytest.mark.asyncio
    async def test_market_buy_applies_slippage_and_posts_fok(self):
        # #given
        engine, clob, verifier = make_engine(market_price=0.5)
        request = OrderRequest(TOKEN_ID, OrderSide.BUY, amount=10.0, is_market_order=True)

        # #when
        result = await engine.build_and_submit_order(request)

        # #then
        assert result.success
        assert result.order_id == "0xorder"
        assert order_values(clob) == (0.51, 19.0, OrderSide.BUY)
        verifier.verify.assert_awaited_once_with(OrderSide.BUY, TOKEN_ID, 9.69, False)
        assert clob.create_order.call_args.kwargs == {"tick_size": "0.01", "neg_risk": False}
        assert clob.post_order.call_args.args[1] == OrderType.FOK

    @pytest.mark.asyncio
    async def test_market_sell_posts_gtc_below_market(self):
        engine, clob, verifier = make_engine(market_price=0.5)
        request = OrderRequest(TOKEN_ID, OrderSide.SELL, amount=10.0, is_market_order=True)

        result = await engine.build_and_submit_order(request)

        assert result.success
        assert order_values(clob) == (0.45, 10.0, OrderSide.SELL)
        verifier.verify.assert_awaited_once_with(OrderSide.SELL, TOKEN_ID, 10.0, False)
        assert clob.post_order.call_args.args[1] == OrderType.GTC

    @pytest.mark.asyncio
    async def test_market_buy_below_minimum_notional(self):
        engine, clob, verifier = make_engine(market_price=0.5)
        request = OrderRequest(TOKEN_ID, OrderSide.BUY, amount=1.0, is_market_order=True)

        result = await engine.build_and_submit_order(request)

        assert not result.success
        assert result.error == "Order too small ($0.51). Minimum is $1.02 at this price."
        verifier.verify.assert_not_awaited()
        clob.create_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_liquidity(self):
        engine, clob, verifier = make_engine()
        clob.calculate_market_price = AsyncMock(side_effect=ExchangeError("No liquidity"))
        request = OrderRequest(TOKEN_ID, OrderSide.BUY, amount=10.0, is_market_order=True)

        result = await engine.build_and_submit_order(request)

        assert not result.success
        assert result.error == "Could not get market price. Market may have no liquidity."


class TestLimitOrders:
    @pytest.mark.asyncio
    async def test_limit_sell(self):
        engine, clob, verifier = make_engine()
        request = OrderRequest(TOKEN_ID, OrderSide.SELL, amount=10.0, price=0.6)

        result = await engine.build_and_submit_order(request)

        assert result.success
        assert order_values(clob) == (0.6, 10.0, OrderSide.SELL)
        assert clob.post_order.call_args.args[1] == OrderType.GTC
        clob.calculate_market_price.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_neg_risk_market_passes_options(self):
        engine, clob, verifier = make_engine()
        request = OrderRequest(TOKEN_ID, OrderSide.BUY, amount=10.0, price=0.123, tick_size="0.001", neg_risk=True)

        await engine.build_and_submit_order(request)

        assert order_values(clob) == (0.123, 10.0, OrderSide.BUY)
        assert clob.create_order.call_args.kwargs == {"tick_size": "0.001", "neg_risk": True}
        verifier.verify.assert_awaited_once_with(OrderSide.BUY, TOKEN_ID, 1.23, True)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", [None, 0, 1, 1.5, -0.1])
    async def test_limit_price_out_of_range(self, price):
        engine, clob, verifier = make_engine()
        request = OrderRequest(TOKEN_ID, OrderSide.BUY, amount=10.0, price=price)

        result = await engine.build_and_submit_order(request)

        assert not result.success
        assert "Price must be between 0 and 1" in result.error

    @pytest.mark.asyncio
    async def test_limit_buy_below_notional_is_allowed(self):
        engine, clob, verifier = make_engine()
        request = OrderRequest(TOKEN_ID, OrderSide.BUY, amount=1.0, price=0.3)

        result = await engine.build_and_submit_order(request)

        assert result.success

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amount(self, amount):
        engine, clob, verifier = make_engine()

        result = await engine.build_and_submit_order(OrderRequest(TOKEN_ID, OrderSide.BUY, amount, price=0.5))

        assert not result.success
        assert result.error == "Amount must be greater than 0"


class TestVerificationAndSigning:
    @pytest.mark.asyncio
    async def test_failed_verification_skips_signing(self):
        engine, clob, verifier = make_engine(
            verification=VerificationResult(ok=False, reason="Insufficient USDC balance.")
        )

        result = await engine.build_and_submit_order(OrderRequest(TOKEN_ID, OrderSide.BUY, 10.0, price=0.5))

        assert not result.success
        assert result.error == "Insufficient USDC balance."
        clob.create_order.assert_not_awaited()
        clob.post_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_signature(self):
        engine, clob, verifier = make_engine()
        clob.create_order = AsyncMock(side_effect=UserRejectedError("User denied"))

        result = await engine.build_and_submit_order(OrderRequest(TOKEN_ID, OrderSide.BUY, 10.0, price=0.5))

        assert not result.success
        assert "rejected" in result.error
        clob.post_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_order_the_client_cannot_build(self):
        engine, clob, verifier = make_engine()
        clob.create_order = AsyncMock(side_effect=InvalidOrder("Could not build order: bad tick"))

        result = await engine.build_and_submit_order(OrderRequest(TOKEN_ID, OrderSide.BUY, 10.0, price=0.5))

        assert not result.success
        assert result.error.startswith("Could not sign order")
        clob.post_order.assert_not_awaited()


class TestSubmit:
    @pytest.mark.asyncio
    async def test_signed_order_posted_once(self):
        # #given
        engine, clob, verifier = make_engine()
        await engine.build_and_submit_order(OrderRequest(TOKEN_ID, OrderSide.BUY, 10.0, price=0.5))
        order = clob.post_order.call_args.args[0]

        # #when
        result = await engine.submit(order, OrderType.GTC)

        # #then
        assert not result.success
        assert clob.post_order.await_count == 1

    @pytest.mark.asyncio
    async def test_each_attempt_signs_a_new_order(self):
        engine, clob, verifier = make_engine()
        request = OrderRequest(TOKEN_ID, OrderSide.BUY, 10.0, price=0.5)

        await engine.build_and_submit_order(request)
        await engine.build_and_submit_order(request)

        assert clob.create_order.await_count == 2
        assert clob.post_order.await_count == 2

    @pytest.mark.asyncio
    async def test_remembered_signatures_are_bounded(self):
        # #given
        engine, clob, verifier = make_engine(max_remembered_orders=2)
        orders = [signed_order(TOKEN_ID, 0.5, 10.0, OrderSide.BUY) for _ in range(3)]

        # #when
        for order in orders:
            await engine.submit(order, OrderType.GTC)

        # #then
        assert len(engine._posted) == 2
        assert orders[0].signature not in engine._posted
        assert not (await engine.submit(orders[2], OrderType.GTC)).success
        assert clob.post_order.await_count == 3

    @pytest.mark.asyncio
    async def test_exchange_error_payload(self):
        engine, clob, verifier = make_engine(
            post_response={"success": False, "errorMsg": "not enough balance / allowance"}
        )

        result = await engine.build_and_submit_order(OrderRequest(TOKEN_ID, OrderSide.BUY, 10.0, price=0.5))

        assert not result.success
        assert result.error == "not enough balance / allowance"

    @pytest.mark.asyncio
    async def test_response_without_order_id_is_ambiguous(self):
        engine, clob, verifier = make_engine(post_response={"status": "live"})

        result = await engine.build_and_submit_order(OrderRequest(TOKEN_ID, OrderSide.BUY, 10.0, price=0.5))

        assert not result.success
        assert result.error == AMBIGUOUS_RESPONSE

    @pytest.mark.asyncio
    async def test_transport_failure_is_not_retried(self):
        engine, clob, verifier = make_engine()
        clob.post_order = AsyncMock(side_effect=NetworkError("timeout"))

        result = await engine.build_and_submit_order(OrderRequest(TOKEN_ID, OrderSide.BUY, 10.0, price=0.5))

        assert not result.success
        assert clob.post_order.await_count == 1

    @pytest.mark.asyncio
    async def test_success_invalidates_caches(self):
        invalidator = CacheInvalidator()
        seen = []
        for key in (BALANCES, POSITIONS, ORDERS):
            invalidator.subscribe(key, seen.append)
        engine, clob, verifier = make_engine(invalidator=invalidator)

        await engine.build_and_submit_order(OrderRequest(TOKEN_ID, OrderSide.BUY, 10.0, price=0.5))

        assert seen == [BALANCES, POSITIONS, ORDERS]
        assert not engine.is_submitting


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_order(self):
        engine, clob, verifier = make_engine()

        result = await engine.cancel_order("0xorder")

        assert result.success
        clob.cancel_order.assert_awaited_once_with("0xorder")

    @pytest.mark.asyncio
    async def test_cancel_not_canceled(self):
        engine, clob, verifier = make_engine()
        clob.cancel_order = AsyncMock(
            return_value={"canceled": [], "not_canceled": {"0xorder": "order already matched"}}
        )

        result = await engine.cancel_order("0xorder")

        assert not result.success
        assert result.error == "order already matched"
