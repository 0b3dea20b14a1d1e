import asyncio
import functools
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import (
    ApiCreds,
    AssetType,
    BalanceAllowanceParams,
    OpenOrderParams,
    OrderArgs,
    PartialCreateOrderOptions,
    TradeParams,
)
from py_clob_client.clob_types import OrderType as ClobOrderType
from py_clob_client.exceptions import PolyApiException, PolyException

from ..base.config import TradingConfig
from ..base.errors import (
    AuthenticationError,
    ExchangeError,
    InvalidOrder,
    MarketNotFound,
    NetworkError,
    RateLimitError,
    SafeTraderError,
    SessionError,
    StaleCredentialsError,
)
from ..models.order import OpenOrder, OrderBook, OrderSide, OrderType, SignatureType, Trade
from ..models.session import ApiCredentials
from .base import HttpGateway

logger = logging.getLogger(__name__)


def to_api_creds(credentials: ApiCredentials) -> ApiCreds:
    return ApiCreds(
        api_key=credentials.key,
        api_secret=credentials.secret,
        api_passphrase=credentials.passphrase,
    )


def from_api_creds(creds: Optional[ApiCreds]) -> ApiCredentials:
    if creds is None:
        return ApiCredentials("", "", "")
    return ApiCredentials(creds.api_key or "", creds.api_secret or "", creds.api_passphrase or "")


def map_api_error(error: PolyException) -> SafeTraderError:
    """Translate a py_clob_client exception into the package hierarchy."""
    status = getattr(error, "status_code", None)
    detail = getattr(error, "error_msg", None) or getattr(error, "msg", None) or str(error)

    if not isinstance(error, PolyApiException):
        return SessionError(f"CLOB client not ready: {detail}")
    if status is None:
        return NetworkError(f"CLOB request failed: {detail}")
    if status == 429:
        return RateLimitError(f"Rate limited: {detail}")
    if status in (401, 403):
        return AuthenticationError(f"Authentication failed ({status}): {detail}")
    if status == 404:
        return MarketNotFound(f"Resource not found: {detail}")
    return ExchangeError(f"CLOB error ({status}): {detail}")


class ClobGateway(HttpGateway):
    """
    Polymarket CLOB access through py_clob_client.

    The ClobClient is blocking, so every call runs in a worker thread. A
    gateway without a key can only read public data. A gateway returned by
    with_credentials is bound to one owner key, one funder Safe and one
    credential triple, and is never mutated afterwards.
    """

    def __init__(
        self,
        config: TradingConfig,
        key: Optional[str] = None,
        owner: Optional[str] = None,
        funder: Optional[str] = None,
        credentials: Optional[ApiCredentials] = None,
    ):
        super().__init__(config.clob_url, config)
        self.chain_id = config.chain_id
        self.owner = owner
        self.funder = funder
        self.credentials = credentials
        self._key = key
        self.client = ClobClient(
            self.host,
            chain_id=self.chain_id,
            key=key,
            creds=to_api_creds(credentials) if credentials else None,
            signature_type=SignatureType.POLY_GNOSIS_SAFE.value,
            funder=funder,
        )

    def with_credentials(
        self, owner: str, funder: str, credentials: ApiCredentials, key: Optional[str] = None
    ) -> "ClobGateway":
        return ClobGateway(
            self.config,
            key=key or self._key,
            owner=owner,
            funder=funder,
            credentials=credentials,
        )

    @property
    def is_authenticated(self) -> bool:
        return bool(self._key and self.owner and self.credentials and self.credentials.is_complete)

    def _ensure_authenticated(self) -> None:
        if not self.is_authenticated:
            raise SessionError("CLOB gateway has no API credentials. Initialize a trading session first.")

    def _invoke(self, func: Callable, *args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except PolyException as e:
            raise map_api_error(e) from e

    async def _call(self, func: Callable, *args, retry: bool = True, **kwargs) -> Any:
        call = functools.partial(self._invoke, func, *args, **kwargs)
        if retry:
            call = self._retry_on_failure(call)
        return await asyncio.to_thread(call)

    # Credentials

    async def derive_api_credentials(self, key: str, address: str, nonce: Optional[int] = None) -> ApiCredentials:
        """
        Derive the owner's existing API key, creating one if none exists.

        Both calls are L1 requests signed with the owner key.
        """
        client = ClobClient(self.host, chain_id=self.chain_id, key=key)

        try:
            credentials = from_api_creds(await self._call(client.derive_api_key, nonce, retry=False))
            if credentials.is_complete:
                logger.debug(f"Derived existing API key for {address}")
                return credentials
        except (AuthenticationError, ExchangeError, MarketNotFound) as e:
            logger.debug(f"Derive API key failed for {address}: {e}")

        credentials = from_api_creds(await self._call(client.create_api_key, nonce, retry=False))
        if not credentials.is_complete:
            raise AuthenticationError("Failed to obtain API credentials")

        logger.info(f"Created API key for {address}")
        return credentials

    async def verify_credentials(self) -> None:
        """Lightweight authenticated read. Raises StaleCredentialsError when rejected."""
        try:
            await self.get_balance_allowance()
        except AuthenticationError as e:
            raise StaleCredentialsError(f"API credentials rejected: {e}") from e

    async def get_balance_allowance(self, token_id: Optional[str] = None) -> Dict[str, Any]:
        self._ensure_authenticated()
        params = BalanceAllowanceParams(
            asset_type=AssetType.CONDITIONAL if token_id else AssetType.COLLATERAL,
            token_id=token_id,
            signature_type=SignatureType.POLY_GNOSIS_SAFE.value,
        )
        return await self._call(self.client.get_balance_allowance, params) or {}

    # Market data

    async def get_order_book(self, token_id: str) -> OrderBook:
        summary = await self._call(self.client.get_order_book, token_id)
        return self._parse_order_book(token_id, summary)

    async def calculate_market_price(self, token_id: str, side: OrderSide, size: float) -> float:
        """
        Price at which size shares would fill against the current book.

        BUY walks asks from the lowest price, SELL walks bids from the highest.
        When the book is thinner than size, the deepest price reached is returned.
        """
        book = await self.get_order_book(token_id)
        levels = book.asks if side == OrderSide.BUY else book.bids
        if not levels:
            raise ExchangeError(f"No liquidity for token {token_id}")

        ordered = sorted(levels, key=lambda level: level["price"], reverse=side == OrderSide.SELL)
        filled = 0.0
        price = ordered[0]["price"]
        for level in ordered:
            price = level["price"]
            filled += level["size"]
            if filled >= size:
                break
        return price

    async def get_tick_size(self, token_id: str) -> str:
        return str(await self._call(self.client.get_tick_size, token_id))

    async def get_neg_risk(self, token_id: str) -> bool:
        return bool(await self._call(self.client.get_neg_risk, token_id))

    # Orders

    async def create_order(
        self,
        token_id: str,
        price: float,
        size: float,
        side: OrderSide,
        tick_size: str = "0.01",
        neg_risk: bool = False,
    ) -> Any:
        """
        Build and sign an order with the Safe as maker and the owner as signer.

        Every call signs a new order with a fresh salt.
        """
        self._ensure_authenticated()
        args = OrderArgs(token_id=str(token_id), price=price, size=size, side=side.value)
        options = PartialCreateOrderOptions(tick_size=tick_size, neg_risk=neg_risk)

        try:
            return await self._call(self.client.create_order, args, options)
        except SafeTraderError:
            raise
        except Exception as e:
            raise InvalidOrder(f"Could not build order: {e}") from e

    async def post_order(self, order: Any, order_type: OrderType) -> Dict[str, Any]:
        """
        Post a signed order once. Never retried.

        Returns the raw exchange response, including 4xx error payloads.
        """
        self._ensure_authenticated()
        try:
            data = await asyncio.to_thread(
                self.client.post_order, order, getattr(ClobOrderType, order_type.value)
            )
        except PolyApiException as e:
            status = getattr(e, "status_code", None)
            if status is not None and 400 <= status < 500 and status not in (401, 403, 429):
                detail = e.error_msg
                return detail if isinstance(detail, dict) else {"error": str(detail)}
            raise map_api_error(e) from e
        except PolyException as e:
            raise map_api_error(e) from e

        return data if isinstance(data, dict) else {}

    async def get_open_orders(
        self, asset_id: Optional[str] = None, market: Optional[str] = None
    ) -> List[OpenOrder]:
        self._ensure_authenticated()
        rows = await self._call(self.client.get_orders, OpenOrderParams(market=market, asset_id=asset_id))
        return [self._parse_open_order(row) for row in _rows(rows)]

    async def get_trades(
        self, asset_id: Optional[str] = None, market: Optional[str] = None
    ) -> List[Trade]:
        self._ensure_authenticated()
        params = TradeParams(maker_address=self.funder, market=market, asset_id=asset_id)
        rows = await self._call(self.client.get_trades, params)
        return [self._parse_trade(row) for row in _rows(rows)]

    async def cancel_order(self, order_id: str) -> Dict[str, Any]:
        self._ensure_authenticated()
        return await self._call(self.client.cancel, order_id, retry=False) or {}

    async def cancel_all(self) -> Dict[str, Any]:
        self._ensure_authenticated()
        return await self._call(self.client.cancel_all, retry=False) or {}

    # Parsing

    def _parse_order_book(self, token_id: str, summary: Any) -> OrderBook:
        def _levels(entries):
            return [
                {"price": float(_field(entry, "price") or 0), "size": float(_field(entry, "size") or 0)}
                for entry in entries or []
            ]

        return OrderBook(
            token_id=token_id,
            bids=_levels(_field(summary, "bids")),
            asks=_levels(_field(summary, "asks")),
            tick_size=_field(summary, "tick_size"),
            neg_risk=_field(summary, "neg_risk"),
        )

    def _parse_open_order(self, data: Dict[str, Any]) -> OpenOrder:
        return OpenOrder(
            id=data.get("id", ""),
            asset_id=str(data.get("asset_id", "")),
            market=data.get("market", ""),
            side=OrderSide(str(data.get("side", "BUY")).upper()),
            price=float(data.get("price", 0) or 0),
            original_size=float(data.get("original_size", 0) or 0),
            size_matched=float(data.get("size_matched", 0) or 0),
            status=data.get("status", ""),
            outcome=data.get("outcome", ""),
            order_type=data.get("order_type", ""),
            created_at=self._parse_datetime(data.get("created_at")),
        )

    def _parse_trade(self, data: Dict[str, Any]) -> Trade:
        return Trade(
            id=data.get("id", ""),
            asset_id=str(data.get("asset_id", "")),
            market=data.get("market", ""),
            side=OrderSide(str(data.get("side", "BUY")).upper()),
            price=float(data.get("price", 0) or 0),
            size=float(data.get("size", 0) or 0),
            status=data.get("status", ""),
            outcome=data.get("outcome", ""),
            match_time=self._parse_datetime(data.get("match_time")),
            transaction_hash=data.get("transaction_hash"),
            raw=data,
        )

    def _parse_datetime(self, timestamp: Optional[Any]) -> Optional[datetime]:
        """Parse unix seconds (int or numeric string) or ISO timestamps"""
        if not timestamp:
            return None

        if isinstance(timestamp, datetime):
            return timestamp

        try:
            return datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
        except (ValueError, TypeError):
            pass

        try:
            return datetime.fromisoformat(str(timestamp).replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None


def _field(source: Any, name: str) -> Any:
    """Read a field from a py_clob_client dataclass or a plain dict"""
    if isinstance(source, dict):
        return source.get(name)
    return getattr(source, name, None)


def _rows(data: Any) -> List[Dict[str, Any]]:
    """Order and trade queries come back as a list or a {"data": [...]} page"""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get("data") or data.get("trades") or []
    return []
