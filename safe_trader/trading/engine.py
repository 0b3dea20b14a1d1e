import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict, Optional

from ..base.config import TradingConfig
from ..base.errors import InvalidOrder, SafeTraderError, UserRejectedError
from ..chain.contracts import COLLATERAL_UNIT
from ..gateway.clob import ClobGateway
from ..models.order import OrderRequest, OrderResult, OrderSide, OrderType
from ..utils.cache import BALANCES, ORDERS, POSITIONS, CacheInvalidator
from .rounding import (
    apply_slippage,
    minimum_buy_amount,
    round_order_amounts,
    round_price_to_tick,
    shares_for_amount,
)
from .verifier import BalanceVerifier

logger = logging.getLogger(__name__)

# Shares quoted against the book to price a market order
MARKET_QUOTE_SIZE = 1.0

AMBIGUOUS_RESPONSE = "Order may not have been placed. Please check your positions."

# Signatures of posted orders kept to refuse a second post of the same order
MAX_REMEMBERED_ORDERS = 1000


class OrderEngine:
    """
    Turns an OrderRequest into a signed, verified, posted order.

    Failures come back as OrderResult(success=False) and never raise. A signed
    order is posted at most once; a retry must go through
    build_and_submit_order again, which signs a new order.
    """

    def __init__(
        self,
        clob: ClobGateway,
        verifier: BalanceVerifier,
        config: TradingConfig,
        invalidator: Optional[CacheInvalidator] = None,
        max_remembered_orders: int = MAX_REMEMBERED_ORDERS,
    ):
        self.clob = clob
        self.verifier = verifier
        self.config = config
        self.invalidator = invalidator or CacheInvalidator()
        self._posted: "OrderedDict[str, None]" = OrderedDict()
        self._max_remembered = max_remembered_orders
        self._in_flight = 0

    @property
    def is_submitting(self) -> bool:
        return self._in_flight > 0

    async def build_and_submit_order(self, request: OrderRequest) -> OrderResult:
        self._in_flight += 1
        try:
            return await self._build_and_submit(request)
        finally:
            self._in_flight -= 1

    async def _build_and_submit(self, request: OrderRequest) -> OrderResult:
        if request.amount is None or request.amount <= 0:
            return OrderResult.failed("Amount must be greater than 0")

        if request.is_market_order:
            try:
                market_price = await self.clob.calculate_market_price(
                    request.token_id, request.side, MARKET_QUOTE_SIZE
                )
            except SafeTraderError as e:
                logger.warning(f"Market price lookup failed for {request.token_id}: {e}")
                return OrderResult.failed("Could not get market price. Market may have no liquidity.")

            price = apply_slippage(
                request.side,
                market_price,
                self.config.buy_slippage,
                self.config.sell_slippage,
                self.config.min_sell_slippage,
            )
            order_type = OrderType.FOK if request.side == OrderSide.BUY else OrderType.GTC
        else:
            price = request.price
            if price is None or not 0 < price < 1:
                return OrderResult.failed(f"Price must be between 0 and 1 (exclusive), got: {price}")
            order_type = OrderType.GTC

        try:
            price_ticks = round_price_to_tick(price, request.tick_size)
            if request.is_market_order and request.side == OrderSide.BUY:
                size = shares_for_amount(request.amount, price_ticks, request.tick_size)
            else:
                size = request.amount
            amounts = round_order_amounts(request.side, price_ticks, size, request.tick_size)
        except InvalidOrder as e:
            return OrderResult.failed(str(e))

        if request.is_market_order and request.side == OrderSide.BUY:
            min_collateral = Decimal(str(self.config.min_order_notional)) * COLLATERAL_UNIT
            if amounts.maker_amount < min_collateral:
                minimum = minimum_buy_amount(price_ticks, request.tick_size, self.config.min_order_notional)
                actual = Decimal(amounts.maker_amount) / COLLATERAL_UNIT
                return OrderResult.failed(
                    f"Order too small (${actual:.2f}). Minimum is ${minimum:.2f} at this price."
                )

        if request.side == OrderSide.BUY:
            required = float(Decimal(amounts.maker_amount) / COLLATERAL_UNIT)
        else:
            required = amounts.size
        verification = await self.verifier.verify(
            request.side, request.token_id, required, request.neg_risk
        )
        if not verification.ok:
            return OrderResult.failed(verification.reason)

        try:
            order = await self.clob.create_order(
                request.token_id,
                amounts.price,
                amounts.size,
                request.side,
                tick_size=request.tick_size,
                neg_risk=request.neg_risk,
            )
        except UserRejectedError as e:
            return OrderResult.failed(f"Order signature rejected: {e}")
        except SafeTraderError as e:
            logger.warning(f"Order signing failed for {request.token_id}: {e}")
            return OrderResult.failed(f"Could not sign order: {e}")

        logger.info(
            f"Submitting {order_type.value} {request.side.value} {amounts.size} @ {amounts.price} "
            f"on {request.token_id}"
        )
        return await self.submit(order, order_type)

    async def submit(self, order: Any, order_type: OrderType) -> OrderResult:
        """Post a signed order. The same signed order is never posted twice."""
        if order.signature in self._posted:
            return OrderResult.failed("Signed order was already submitted. Build a new order to retry.")
        self._remember(order.signature)

        try:
            response = await self.clob.post_order(order, order_type)
        except SafeTraderError as e:
            logger.warning(f"Order submission failed: {e}")
            return OrderResult.failed(f"Order submission failed: {e}")

        result = self._interpret_response(response)
        if result.success:
            logger.info(f"Order placed: {result.order_id}")
            self.invalidator.invalidate(BALANCES, POSITIONS, ORDERS)
        else:
            logger.warning(f"Order rejected: {result.error}")
        return result

    def _remember(self, signature: str) -> None:
        self._posted[signature] = None
        while len(self._posted) > self._max_remembered:
            self._posted.popitem(last=False)

    def _interpret_response(self, response: Dict[str, Any]) -> OrderResult:
        if not response:
            return OrderResult.failed(AMBIGUOUS_RESPONSE)

        error = response.get("error") or response.get("errorMsg")
        if error or response.get("status") == "error" or response.get("success") is False:
            return OrderResult.failed(str(error or response.get("message") or "Order rejected by exchange"))

        order_id = response.get("orderID") or response.get("id")
        if not order_id and response.get("orderIds"):
            order_id = response["orderIds"][0]
        if not order_id:
            return OrderResult.failed(AMBIGUOUS_RESPONSE)

        return OrderResult(success=True, order_id=str(order_id), status=response.get("status"))

    async def cancel_order(self, order_id: str) -> OrderResult:
        try:
            response = await self.clob.cancel_order(order_id)
        except SafeTraderError as e:
            return OrderResult.failed(f"Cancel failed: {e}")

        not_canceled = (response or {}).get("not_canceled") or {}
        if order_id in not_canceled:
            return OrderResult.failed(str(not_canceled[order_id]))

        self.invalidator.invalidate(BALANCES, ORDERS)
        return OrderResult(success=True, order_id=order_id, status="CANCELED")

    async def cancel_all(self) -> OrderResult:
        try:
            await self.clob.cancel_all()
        except SafeTraderError as e:
            return OrderResult.failed(f"Cancel all failed: {e}")

        self.invalidator.invalidate(BALANCES, ORDERS)
        return OrderResult(success=True, status="CANCELED")
