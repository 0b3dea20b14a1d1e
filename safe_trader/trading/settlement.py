"""
Settlement inference for held positions.

Resolution is read from the data source flags when present and otherwise
inferred from prices. The price thresholds are a heuristic: a heavily skewed
market that is still open can look resolved, so callers should treat the
result as approximate rather than authoritative settlement data.
"""

from typing import List, Optional

from ..base.errors import InvalidOrder
from ..chain.calls import RelayerCall, redeem_positions
from ..chain.contracts import ContractConfig
from ..models.position import MarketInfo, PositionData, ResolvedPosition

WIN_THRESHOLD = 0.99
LOSE_THRESHOLD = 0.01

BINARY_OUTCOMES = ("yes", "no")


def complement_outcome(outcome: str, outcomes: Optional[List[str]] = None) -> Optional[str]:
    """The other outcome of a binary market, or None when the market is not binary."""
    if outcomes and len(outcomes) == 2:
        lowered = [o.lower() for o in outcomes]
        if outcome.lower() in lowered:
            return outcomes[1 - lowered.index(outcome.lower())]

    if outcome.lower() in BINARY_OUTCOMES:
        return "No" if outcome.lower() == "yes" else "Yes"

    return None


def _winner_from_market(market: MarketInfo) -> Optional[str]:
    for index, price in enumerate(market.outcome_prices):
        if price >= WIN_THRESHOLD and index < len(market.outcomes):
            return market.outcomes[index]
    return market.winning_outcome


def resolve_position(position: PositionData, market: Optional[MarketInfo] = None) -> ResolvedPosition:
    """
    Infer whether a position's market resolved and whether it won.

    Precedence: redeemable/resolved flag, market closed flag, then the
    position price (>= 0.99 won, <= 0.01 lost). An ambiguous price falls back
    to the market's outcome price vector, then to its winningOutcome field.
    When none of these decide, winning_outcome stays None and the position is
    not redeemable.
    """
    price = position.cur_price
    outcomes = market.outcomes if market else []

    flagged = position.redeemable or bool(market and market.resolved)
    closed = bool(market and market.closed)
    decisive_price = price >= WIN_THRESHOLD or price <= LOSE_THRESHOLD
    resolved = flagged or closed or decisive_price

    winning_outcome: Optional[str] = None
    is_winner = False

    if resolved:
        if price >= WIN_THRESHOLD:
            winning_outcome = position.outcome
            is_winner = True
        elif price <= LOSE_THRESHOLD:
            winning_outcome = complement_outcome(position.outcome, outcomes)
        elif market is not None:
            winning_outcome = _winner_from_market(market)
            if winning_outcome is not None:
                is_winner = winning_outcome.lower() == position.outcome.lower()

    return ResolvedPosition(
        condition_id=position.condition_id,
        outcome_index=position.outcome_index,
        outcome=position.outcome,
        token_id=position.asset,
        size=position.size,
        avg_price=position.avg_price,
        current_price=price,
        resolved=resolved,
        winning_outcome=winning_outcome,
        is_winner=is_winner,
        payout=position.size if is_winner else 0.0,
        negative_risk=position.negative_risk,
        title=position.title,
    )


def redemption_index_sets(outcome_index: int, outcome_count: int = 2) -> List[int]:
    """
    Index sets to redeem: the held outcome's set first, then the others.

    Redeeming every set of the condition burns the whole position in one call;
    only the winning set pays out.
    """
    if not 0 <= outcome_index < outcome_count:
        raise InvalidOrder(f"Outcome index {outcome_index} out of range for {outcome_count} outcomes")
    held = 1 << outcome_index
    return [held] + [1 << i for i in range(outcome_count) if i != outcome_index]


def build_redeem_call(position: ResolvedPosition, contracts: ContractConfig) -> RelayerCall:
    """
    Conditional tokens redeemPositions call for a winning position.

    Raises:
        InvalidOrder: If the position is not a determined winner with a payout
    """
    if not position.redeemable:
        raise InvalidOrder(
            f"Position {position.token_id} is not redeemable "
            f"(resolved={position.resolved}, winner={position.is_winner}, payout={position.payout})"
        )

    return redeem_positions(
        contracts.conditional_tokens,
        contracts.collateral,
        position.condition_id,
        redemption_index_sets(position.outcome_index),
    )
