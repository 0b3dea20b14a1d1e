import asyncio
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from ..chain.contracts import COLLATERAL_UNIT
from ..chain.reader import ChainReader
from ..models.order import OrderSide
from ..models.position import BalanceSnapshot, VerificationResult

logger = logging.getLogger(__name__)


def _to_raw(amount: float) -> int:
    return int((Decimal(str(amount)) * COLLATERAL_UNIT).to_integral_value(rounding=ROUND_HALF_UP))


def _fmt(raw: int) -> str:
    return f"{Decimal(raw) / COLLATERAL_UNIT:.2f}"


class BalanceVerifier:
    """
    Checks that the Safe can fund an order before it is signed.

    Every call reads the chain again; nothing from an earlier read is reused.
    A failed read fails the verification.
    """

    def __init__(self, reader: ChainReader, owner: str, safe_address: str):
        self.reader = reader
        self.contracts = reader.contracts
        self.owner = owner
        self.safe_address = safe_address

    def _exchange_label(self, neg_risk: bool) -> str:
        return "NegRisk CTF Exchange" if neg_risk else "CTF Exchange"

    async def verify(
        self, side: OrderSide, token_id: str, amount: float, neg_risk: bool = False
    ) -> VerificationResult:
        """
        Args:
            side: Order side
            token_id: Outcome token of the market
            amount: Collateral dollars for BUY, shares for SELL
            neg_risk: Whether the market settles on the NegRisk exchange
        """
        required = _to_raw(amount)
        exchange = self.contracts.exchange_for(neg_risk)
        label = self._exchange_label(neg_risk)

        try:
            if side == OrderSide.BUY:
                result = await self._verify_buy(required, exchange, label)
            else:
                result = await self._verify_sell(token_id, required, exchange, label)
        except Exception as e:
            logger.warning(f"Balance verification read failed for {self.safe_address}: {e}")
            return VerificationResult(ok=False, reason=f"Could not read on-chain balances: {e}")

        if not result.ok:
            logger.info(f"Verification failed: {result.reason}")
        return result

    async def _verify_buy(self, required: int, exchange: str, label: str) -> VerificationResult:
        allowance = await self.reader.collateral_allowance(self.safe_address, exchange)
        if allowance < required:
            return VerificationResult(
                ok=False,
                reason=(
                    f"Insufficient USDC allowance. Approve USDC for the {label} ({exchange}) "
                    f"from your trading wallet {self.safe_address}."
                ),
            )

        balance = await self.reader.collateral_balance(self.safe_address)
        if balance < required:
            return VerificationResult(
                ok=False,
                reason=(
                    f"Insufficient USDC balance. You have ${_fmt(balance)}, need ${_fmt(required)}. "
                    f"Deposit USDC to your trading wallet {self.safe_address}."
                ),
            )

        return VerificationResult(ok=True)

    async def _verify_sell(
        self, token_id: str, required: int, exchange: str, label: str
    ) -> VerificationResult:
        balance = await self.reader.position_balance(self.safe_address, token_id)
        if balance < required:
            return VerificationResult(
                ok=False,
                reason=(
                    f"Insufficient position. You have {_fmt(balance)} shares, need {_fmt(required)} "
                    f"(short {_fmt(required - balance)})."
                ),
            )

        approved = await self.reader.is_approved_for_all(self.safe_address, exchange)
        if not approved:
            return VerificationResult(
                ok=False,
                reason=(
                    f"Outcome tokens not approved for the {label} ({exchange}). "
                    f"Approve trading from your trading wallet {self.safe_address}."
                ),
            )

        return VerificationResult(ok=True)

    async def snapshot(self, token_id: Optional[str] = None, neg_risk: bool = False) -> BalanceSnapshot:
        exchange = self.contracts.exchange_for(neg_risk)
        reads = [
            self.reader.collateral_balance(self.owner),
            self.reader.collateral_balance(self.safe_address),
            self.reader.collateral_allowance(self.safe_address, exchange),
        ]
        if token_id:
            reads.append(self.reader.position_balance(self.safe_address, token_id))

        results = await asyncio.gather(*reads)
        return BalanceSnapshot(
            wallet_collateral=results[0],
            derived_wallet_collateral=results[1],
            allowance_to_exchange=results[2],
            position_balance=results[3] if token_id else None,
            token_id=token_id,
        )
