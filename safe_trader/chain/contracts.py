"""
Polygon contract addresses and minimal ABIs used for balance, allowance and
approval reads.
"""

from dataclasses import dataclass

from ..base.errors import SafeTraderError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = "0x" + "00" * 32
MAX_UINT256 = 2**256 - 1

# USDC.e and outcome tokens both use 6 decimals
COLLATERAL_DECIMALS = 6
COLLATERAL_UNIT = 10**COLLATERAL_DECIMALS


@dataclass(frozen=True)
class ContractConfig:
    collateral: str
    conditional_tokens: str
    exchange: str
    neg_risk_exchange: str
    neg_risk_adapter: str
    safe_factory: str
    safe_multisend: str
    safe_init_code_hash: str

    def exchange_for(self, neg_risk: bool) -> str:
        """Exchange contract that settles orders for a market variant"""
        return self.neg_risk_exchange if neg_risk else self.exchange


POLYGON_CONTRACTS = ContractConfig(
    collateral="0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174",
    conditional_tokens="0x4D97DCd97eC945f40cF65F87097ACe5EA0476045",
    exchange="0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E",
    neg_risk_exchange="0xC5d563A36AE78145C45a50134d48A1215220f80a",
    neg_risk_adapter="0xd91E80cF2E7be2e162c6513ceD06f1dD0dA35296",
    safe_factory="0xaacfeea03eb1561c4e67d661e40682bd20e3541b",
    safe_multisend="0xa238cbeb142c10ef7ad8442c6d1f9e89e07e7761",
    safe_init_code_hash="0x2bce2127ff07fb632d16c8347c4ebf501f4841168bed00d9e6ef715ddb6fcecf",
)

_CONTRACTS = {137: POLYGON_CONTRACTS}


def get_contract_config(chain_id: int) -> ContractConfig:
    try:
        return _CONTRACTS[chain_id]
    except KeyError:
        raise SafeTraderError(f"Unsupported chain id: {chain_id}") from None


ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "_owner", "type": "address"},
            {"name": "_spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "remaining", "type": "uint256"}],
        "type": "function",
    },
]

ERC1155_ABI = [
    {
        "constant": True,
        "inputs": [
            {"name": "account", "type": "address"},
            {"name": "id", "type": "uint256"},
        ],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "account", "type": "address"},
            {"name": "operator", "type": "address"},
        ],
        "name": "isApprovedForAll",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
]
