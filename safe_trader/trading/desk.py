import logging
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, Iterable, List, Optional

from ..base.config import TradingConfig
from ..base.errors import InsufficientFunds, InvalidOrder
from ..chain.approvals import ApprovalStatus, approval_calls, check_all_approvals
from ..chain.calls import erc20_transfer
from ..chain.contracts import COLLATERAL_UNIT
from ..chain.reader import ChainReader
from ..gateway.data_api import PositionsClient
from ..models.order import OpenOrder, OrderRequest, OrderResult, Trade
from ..models.position import BalanceSnapshot, ResolvedPosition
from ..models.session import Complete
from ..session.machine import TradingSessionMachine
from ..utils.cache import BALANCES, POSITIONS, CacheInvalidator
from .engine import OrderEngine
from .settlement import build_redeem_call, resolve_position
from .verifier import BalanceVerifier

logger = logging.getLogger(__name__)

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class TradingDesk:
    """
    Trading operations bound to one completed session.

    Built from the machine's Complete state; a new session needs a new desk.
    """

    def __init__(
        self,
        state: Complete,
        reader: ChainReader,
        config: TradingConfig,
        positions_client: Optional[PositionsClient] = None,
        invalidator: Optional[CacheInvalidator] = None,
    ):
        self.state = state
        self.session = state.session
        self.clob = state.clob
        self.relayer = state.relayer
        self.reader = reader
        self.contracts = reader.contracts
        self.config = config
        self.positions_client = positions_client or PositionsClient(config)
        self.invalidator = invalidator or CacheInvalidator()

        owner = self.session.owner_address
        safe_address = self.session.derived_wallet_address
        self.verifier = BalanceVerifier(reader, owner, safe_address)
        self.engine = OrderEngine(self.clob, self.verifier, config, self.invalidator)

    @classmethod
    def from_machine(
        cls,
        machine: TradingSessionMachine,
        reader: Optional[ChainReader] = None,
        positions_client: Optional[PositionsClient] = None,
        invalidator: Optional[CacheInvalidator] = None,
    ) -> "TradingDesk":
        """Raises SessionError unless the machine is complete."""
        state = machine.require_complete()
        return cls(
            state,
            reader or ChainReader(machine.config.rpc_url, machine.contracts),
            machine.config,
            positions_client=positions_client,
            invalidator=invalidator,
        )

    @property
    def safe_address(self) -> str:
        return self.session.derived_wallet_address

    # Orders

    async def place_order(self, request: OrderRequest) -> OrderResult:
        return await self.engine.build_and_submit_order(request)

    async def cancel_order(self, order_id: str) -> OrderResult:
        return await self.engine.cancel_order(order_id)

    async def cancel_all(self) -> OrderResult:
        return await self.engine.cancel_all()

    async def open_orders(self, asset_ids: Optional[Iterable[str]] = None) -> List[OpenOrder]:
        orders = await self.clob.get_open_orders()
        if asset_ids is None:
            return orders
        wanted = {str(a) for a in asset_ids}
        return [order for order in orders if order.asset_id in wanted]

    async def trades(self, asset_ids: Optional[Iterable[str]] = None) -> List[Trade]:
        trades = await self.clob.get_trades()
        if asset_ids is not None:
            wanted = {str(a) for a in asset_ids}
            trades = [trade for trade in trades if trade.asset_id in wanted]
        return sorted(trades, key=lambda t: t.match_time or _EPOCH, reverse=True)

    # Balances and positions

    async def balances(self, token_id: Optional[str] = None, neg_risk: bool = False) -> BalanceSnapshot:
        return await self.verifier.snapshot(token_id, neg_risk)

    async def positions(self) -> List[ResolvedPosition]:
        """Resolved positions of the Safe, largest value first."""
        raw_positions = await self.positions_client.fetch_positions(self.safe_address)
        markets = await self.positions_client.fetch_markets_by_token(p.asset for p in raw_positions)

        resolved = [resolve_position(p, markets.get(p.asset)) for p in raw_positions]
        return sorted(resolved, key=lambda p: p.value, reverse=True)

    async def approval_status(self) -> ApprovalStatus:
        return await check_all_approvals(self.reader, self.safe_address)

    # Relayed operations

    async def approve_all(self) -> Optional[Dict[str, Any]]:
        """Set any missing approvals. Returns None when nothing was missing."""
        status = await self.approval_status()
        if status.all_approved:
            return None

        transaction = await self.relayer.execute(
            approval_calls(self.contracts, status), "Set trading approvals"
        )
        receipt = await transaction.wait()
        self.invalidator.invalidate(BALANCES)
        return receipt

    async def withdraw(self, amount: float) -> Dict[str, Any]:
        """Move USDC from the Safe back to the owner wallet."""
        raw_amount = int((Decimal(str(amount)) * COLLATERAL_UNIT).to_integral_value(rounding=ROUND_DOWN))
        if raw_amount <= 0:
            raise InvalidOrder(f"Withdraw amount must be greater than 0, got: {amount}")

        balance = await self.reader.collateral_balance(self.safe_address)
        if balance < raw_amount:
            raise InsufficientFunds(
                f"Cannot withdraw ${amount:.2f}; trading wallet holds ${Decimal(balance) / COLLATERAL_UNIT:.2f}"
            )

        call = erc20_transfer(self.contracts.collateral, self.session.owner_address, raw_amount)
        transaction = await self.relayer.execute([call], f"Withdraw {amount:.2f} USDC")
        receipt = await transaction.wait()
        self.invalidator.invalidate(BALANCES)
        return receipt

    async def redeem(self, position: ResolvedPosition) -> Dict[str, Any]:
        """Redeem a winning position. Raises InvalidOrder for anything not redeemable."""
        call = build_redeem_call(position, self.contracts)
        transaction = await self.relayer.execute([call], f"Redeem {position.title or position.condition_id}")
        receipt = await transaction.wait()
        self.invalidator.invalidate(BALANCES, POSITIONS)
        return receipt
