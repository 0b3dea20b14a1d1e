from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union

from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data

from ..base.config import POLYGON_CHAIN_ID
from ..base.errors import UserRejectedError


def _prefixed(signature: str) -> str:
    return signature if signature.startswith("0x") else f"0x{signature}"


class WalletAdapter(ABC):
    """
    Connected wallet as seen by the trading core.

    Implementations raise UserRejectedError when the holder declines a
    signature or a network switch. Every other exception is a wallet fault.
    """

    @abstractmethod
    async def get_address(self) -> Optional[str]:
        """Connected account address, or None when disconnected"""
        pass

    @abstractmethod
    async def get_chain_id(self) -> int:
        pass

    @abstractmethod
    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        """
        Sign EIP-712 typed data.

        Args:
            typed_data: Full message with types, primaryType, domain and message

        Returns:
            0x-prefixed 65-byte signature
        """
        pass

    @abstractmethod
    async def sign_message(self, message: Union[str, bytes]) -> str:
        """EIP-191 personal sign of text or raw bytes"""
        pass

    @abstractmethod
    async def switch_chain(self, chain_id: int) -> None:
        pass

    def signing_key(self) -> Optional[str]:
        """
        Private key for clients that sign locally, such as the CLOB client.

        None when the wallet never exposes its key.
        """
        return None


class LocalAccountWallet(WalletAdapter):
    """
    WalletAdapter backed by a local private key.

    Signing never prompts, so it never raises UserRejectedError; switch_chain
    only accepts chains listed in allowed_chains.
    """

    def __init__(
        self,
        private_key: str,
        chain_id: int = POLYGON_CHAIN_ID,
        allowed_chains: Optional[set] = None,
    ):
        self._account = Account.from_key(private_key)
        self._private_key = private_key
        self._chain_id = chain_id
        self._allowed_chains = allowed_chains or {POLYGON_CHAIN_ID}

    @property
    def address(self) -> str:
        return self._account.address

    async def get_address(self) -> Optional[str]:
        return self._account.address

    def signing_key(self) -> Optional[str]:
        return self._private_key

    async def get_chain_id(self) -> int:
        return self._chain_id

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        encoded = encode_typed_data(full_message=typed_data)
        signed = self._account.sign_message(encoded)
        return _prefixed(signed.signature.hex())

    async def sign_message(self, message: Union[str, bytes]) -> str:
        if isinstance(message, bytes):
            signable = encode_defunct(primitive=message)
        else:
            signable = encode_defunct(text=message)
        signed = self._account.sign_message(signable)
        return _prefixed(signed.signature.hex())

    async def switch_chain(self, chain_id: int) -> None:
        if chain_id not in self._allowed_chains:
            raise UserRejectedError(f"Chain {chain_id} is not available for this wallet")
        self._chain_id = chain_id
