from .contracts import (
    ContractConfig,
    POLYGON_CONTRACTS,
    get_contract_config,
    COLLATERAL_UNIT,
    MAX_UINT256,
    ZERO_ADDRESS,
)
from .safe import derive_safe_address
from .reader import ChainReader
from .calls import (
    RelayerCall,
    encode_call,
    encode_multisend,
    erc20_approve,
    erc20_transfer,
    set_approval_for_all,
    redeem_positions,
)
from .approvals import ApprovalStatus, check_all_approvals, approval_calls

__all__ = [
    "ContractConfig",
    "POLYGON_CONTRACTS",
    "get_contract_config",
    "COLLATERAL_UNIT",
    "MAX_UINT256",
    "ZERO_ADDRESS",
    "derive_safe_address",
    "ChainReader",
    "RelayerCall",
    "encode_call",
    "encode_multisend",
    "erc20_approve",
    "erc20_transfer",
    "set_approval_for_all",
    "redeem_positions",
    "ApprovalStatus",
    "check_all_approvals",
    "approval_calls",
]
