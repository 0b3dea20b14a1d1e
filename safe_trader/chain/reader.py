import asyncio
import logging
from typing import Optional

from web3 import Web3

from .contracts import ERC1155_ABI, ERC20_ABI, ContractConfig

logger = logging.getLogger(__name__)


class ChainReader:
    """
    Point-in-time on-chain reads for collateral and outcome tokens.

    web3 calls are blocking; every public method runs them in a worker thread
    so the event loop keeps serving other work. Nothing is cached.
    """

    def __init__(self, rpc_url: str, contracts: ContractConfig, web3: Optional[Web3] = None):
        self.contracts = contracts
        self._web3 = web3 or Web3(Web3.HTTPProvider(rpc_url))
        self._collateral = self._web3.eth.contract(
            address=Web3.to_checksum_address(contracts.collateral),
            abi=ERC20_ABI,
        )
        self._conditional_tokens = self._web3.eth.contract(
            address=Web3.to_checksum_address(contracts.conditional_tokens),
            abi=ERC1155_ABI,
        )

    async def collateral_balance(self, address: str) -> int:
        """USDC.e balance in raw 6-decimal units"""
        return await asyncio.to_thread(
            self._collateral.functions.balanceOf(Web3.to_checksum_address(address)).call
        )

    async def collateral_allowance(self, owner: str, spender: str) -> int:
        return await asyncio.to_thread(
            self._collateral.functions.allowance(
                Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)
            ).call
        )

    async def position_balance(self, address: str, token_id: str) -> int:
        """Outcome token balance in raw 6-decimal units"""
        return await asyncio.to_thread(
            self._conditional_tokens.functions.balanceOf(
                Web3.to_checksum_address(address), int(token_id)
            ).call
        )

    async def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return await asyncio.to_thread(
            self._conditional_tokens.functions.isApprovedForAll(
                Web3.to_checksum_address(owner), Web3.to_checksum_address(operator)
            ).call
        )

    async def has_code(self, address: str) -> bool:
        code = await asyncio.to_thread(
            self._web3.eth.get_code, Web3.to_checksum_address(address)
        )
        return len(code) > 0
