import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List

from .calls import RelayerCall, erc20_approve, set_approval_for_all
from .contracts import COLLATERAL_UNIT, ContractConfig
from .reader import ChainReader

logger = logging.getLogger(__name__)

# Allowances below 1M USDC are topped back up to the max
ALLOWANCE_THRESHOLD = 1_000_000 * COLLATERAL_UNIT


@dataclass
class ApprovalStatus:
    collateral: Dict[str, bool] = field(default_factory=dict)
    outcome_tokens: Dict[str, bool] = field(default_factory=dict)

    @property
    def all_approved(self) -> bool:
        return all(self.collateral.values()) and all(self.outcome_tokens.values())


def collateral_spenders(contracts: ContractConfig) -> List[str]:
    return [
        contracts.conditional_tokens,
        contracts.neg_risk_adapter,
        contracts.exchange,
        contracts.neg_risk_exchange,
    ]


def outcome_token_operators(contracts: ContractConfig) -> List[str]:
    return [
        contracts.exchange,
        contracts.neg_risk_exchange,
        contracts.neg_risk_adapter,
    ]


async def check_all_approvals(reader: ChainReader, safe_address: str) -> ApprovalStatus:
    """Read every USDC allowance and outcome-token operator approval the Safe needs."""
    contracts = reader.contracts
    spenders = collateral_spenders(contracts)
    operators = outcome_token_operators(contracts)

    allowances = await asyncio.gather(
        *(reader.collateral_allowance(safe_address, spender) for spender in spenders)
    )
    approvals = await asyncio.gather(
        *(reader.is_approved_for_all(safe_address, operator) for operator in operators)
    )

    status = ApprovalStatus(
        collateral={
            spender: allowance >= ALLOWANCE_THRESHOLD
            for spender, allowance in zip(spenders, allowances)
        },
        outcome_tokens={
            operator: bool(approved) for operator, approved in zip(operators, approvals)
        },
    )

    if not status.all_approved:
        missing = [k for k, v in {**status.collateral, **status.outcome_tokens}.items() if not v]
        logger.debug(f"Missing approvals for {safe_address}: {missing}")

    return status


def approval_calls(contracts: ContractConfig, status: ApprovalStatus = None) -> List[RelayerCall]:
    """
    Build the approval batch. With a status, only the missing approvals are included.
    """
    calls = []
    for spender in collateral_spenders(contracts):
        if status is None or not status.collateral.get(spender, False):
            calls.append(erc20_approve(contracts.collateral, spender))

    for operator in outcome_token_operators(contracts):
        if status is None or not status.outcome_tokens.get(operator, False):
            calls.append(set_approval_for_all(contracts.conditional_tokens, operator))

    return calls
