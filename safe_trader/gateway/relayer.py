import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Sequence

from eth_account.messages import _hash_eip191_message, encode_typed_data
from py_clob_client.signing.hmac import build_hmac_signature
from web3 import Web3

from ..base.config import TradingConfig
from ..base.errors import NetworkError, RelayerError
from ..chain.calls import RelayerCall, encode_multisend
from ..chain.contracts import ZERO_ADDRESS, ContractConfig
from ..models.session import ApiCredentials
from ..wallet.adapter import WalletAdapter
from .base import HttpGateway

logger = logging.getLogger(__name__)

OPERATION_CALL = 0
OPERATION_DELEGATE_CALL = 1

SUCCESS_STATES = ("STATE_MINED", "STATE_CONFIRMED")
FAILURE_STATES = ("STATE_FAILED", "STATE_INVALID")

SAFE_FACTORY_DOMAIN_NAME = "Polymarket Contract Proxy Factory"


def _split_safe_signature(signature: str) -> str:
    """
    Re-encode an eth_sign signature the way Safe expects it.

    Safe distinguishes eth_sign signatures by v + 4 (31/32 instead of 27/28).
    """
    raw = bytes.fromhex(signature[2:] if signature.startswith("0x") else signature)
    if len(raw) != 65:
        raise RelayerError(f"Unexpected signature length: {len(raw)}")

    v = raw[64]
    if v in (0, 1):
        v += 31
    elif v in (27, 28):
        v += 4
    else:
        raise RelayerError(f"Invalid signature v value: {v}")

    return "0x" + (raw[:64] + bytes([v])).hex()


def build_builder_headers(
    credentials: ApiCredentials,
    method: str,
    request_path: str,
    body: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> Dict[str, str]:
    """Builder attribution headers required by the relayer."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signature = build_hmac_signature(credentials.secret, timestamp, method, request_path, body)

    return {
        "POLY_BUILDER_API_KEY": credentials.key,
        "POLY_BUILDER_PASSPHRASE": credentials.passphrase,
        "POLY_BUILDER_SIGNATURE": signature,
        "POLY_BUILDER_TIMESTAMP": str(timestamp),
    }


class RelayerTransaction:
    """Handle on a submitted relayer transaction."""

    def __init__(self, relayer: "SafeRelayer", transaction_id: str, transaction_hash: Optional[str] = None):
        self.relayer = relayer
        self.transaction_id = transaction_id
        self.transaction_hash = transaction_hash
        self.state: Optional[str] = None

    async def wait(self, timeout: Optional[float] = None, poll_interval: Optional[float] = None) -> Dict[str, Any]:
        """
        Poll until the transaction is mined.

        Raises:
            RelayerError: The relayer reports the transaction failed or invalid
            NetworkError: No final state before timeout
        """
        timeout = timeout or self.relayer.config.relayer_timeout
        poll_interval = poll_interval or self.relayer.config.relayer_poll_interval
        deadline = time.monotonic() + timeout

        while True:
            data = await self.relayer.get_transaction(self.transaction_id)
            self.state = data.get("state")
            self.transaction_hash = data.get("transactionHash") or self.transaction_hash

            if self.state in SUCCESS_STATES:
                logger.info(f"Relayer transaction {self.transaction_id} mined: {self.transaction_hash}")
                return data
            if self.state in FAILURE_STATES:
                raise RelayerError(f"Relayer transaction {self.transaction_id} ended in {self.state}")
            if time.monotonic() >= deadline:
                raise NetworkError(
                    f"Relayer transaction {self.transaction_id} not mined after {timeout}s (state: {self.state})"
                )

            await asyncio.sleep(poll_interval)


class SafeRelayer(HttpGateway):
    """
    Meta-transaction relayer for the owner's Safe.

    Calls are signed by the owner wallet as Safe transactions and executed by
    the relayer, so the owner never pays gas or sends transactions directly.
    """

    def __init__(
        self,
        config: TradingConfig,
        wallet: WalletAdapter,
        owner: str,
        safe_address: str,
        contracts: ContractConfig,
    ):
        super().__init__(config.relayer_url, config)
        self.wallet = wallet
        self.owner = owner
        self.safe_address = safe_address
        self.contracts = contracts
        self.chain_id = config.chain_id
        self._builder_credentials = (
            ApiCredentials(
                key=config.builder_api_key,
                secret=config.builder_secret,
                passphrase=config.builder_passphrase,
            )
            if config.has_builder_credentials
            else None
        )

    async def is_deployed(self) -> bool:
        data = await self._arequest("GET", "/deployed", params={"address": self.safe_address}) or {}
        return bool(data.get("deployed", False))

    async def get_nonce(self) -> int:
        data = await self._arequest("GET", "/nonce", params={"address": self.owner, "type": "SAFE"}) or {}
        return int(data.get("nonce", 0))

    async def get_transaction(self, transaction_id: str) -> Dict[str, Any]:
        data = await self._arequest("GET", "/transaction", params={"id": transaction_id})
        if isinstance(data, list):
            return data[0] if data else {}
        return data or {}

    async def deploy(self) -> RelayerTransaction:
        """Deploy the Safe through the factory. The owner signs a CreateProxy message."""
        typed_data = {
            "types": {
                "EIP712Domain": [
                    {"name": "name", "type": "string"},
                    {"name": "chainId", "type": "uint256"},
                    {"name": "verifyingContract", "type": "address"},
                ],
                "CreateProxy": [
                    {"name": "paymentToken", "type": "address"},
                    {"name": "payment", "type": "uint256"},
                    {"name": "paymentReceiver", "type": "address"},
                ],
            },
            "primaryType": "CreateProxy",
            "domain": {
                "name": SAFE_FACTORY_DOMAIN_NAME,
                "chainId": self.chain_id,
                "verifyingContract": self._checksum(self.contracts.safe_factory),
            },
            "message": {
                "paymentToken": ZERO_ADDRESS,
                "payment": 0,
                "paymentReceiver": ZERO_ADDRESS,
            },
        }
        signature = await self.wallet.sign_typed_data(typed_data)

        request = {
            "from": self.owner,
            "to": self._checksum(self.contracts.safe_factory),
            "proxyWallet": self.safe_address,
            "data": "0x",
            "signature": signature,
            "signatureParams": {
                "paymentToken": ZERO_ADDRESS,
                "payment": "0",
                "paymentReceiver": ZERO_ADDRESS,
            },
            "type": "SAFE-CREATE",
        }
        logger.info(f"Deploying Safe {self.safe_address} for {self.owner}")
        return await self._submit(request)

    async def execute(self, calls: Sequence[RelayerCall], description: str = "") -> RelayerTransaction:
        """
        Execute a batch of calls from the Safe.

        A single call is sent directly; several calls go through MultiSend as
        one delegatecall so they succeed or fail together.
        """
        if not calls:
            raise RelayerError("No calls to execute")

        if len(calls) == 1:
            to, data, value, operation = calls[0].to, calls[0].data, calls[0].value, OPERATION_CALL
        else:
            to = self._checksum(self.contracts.safe_multisend)
            data = encode_multisend(calls)
            value = 0
            operation = OPERATION_DELEGATE_CALL

        nonce = await self.get_nonce()
        safe_tx = self._build_safe_tx(to, data, value, operation, nonce)
        digest = _hash_eip191_message(encode_typed_data(full_message=safe_tx))
        signature = _split_safe_signature(await self.wallet.sign_message(bytes(digest)))

        request = {
            "from": self.owner,
            "to": to,
            "proxyWallet": self.safe_address,
            "data": data,
            "nonce": str(nonce),
            "signature": signature,
            "signatureParams": {
                "gasPrice": "0",
                "operation": str(operation),
                "safeTxnGas": "0",
                "baseGas": "0",
                "gasToken": ZERO_ADDRESS,
                "refundReceiver": ZERO_ADDRESS,
            },
            "type": "SAFE",
            "metadata": description,
        }
        logger.info(f"Relaying {len(calls)} call(s) from {self.safe_address}: {description}")
        return await self._submit(request)

    def _build_safe_tx(self, to: str, data: str, value: int, operation: int, nonce: int) -> Dict[str, Any]:
        return {
            "types": {
                "EIP712Domain": [
                    {"name": "chainId", "type": "uint256"},
                    {"name": "verifyingContract", "type": "address"},
                ],
                "SafeTx": [
                    {"name": "to", "type": "address"},
                    {"name": "value", "type": "uint256"},
                    {"name": "data", "type": "bytes"},
                    {"name": "operation", "type": "uint8"},
                    {"name": "safeTxGas", "type": "uint256"},
                    {"name": "baseGas", "type": "uint256"},
                    {"name": "gasPrice", "type": "uint256"},
                    {"name": "gasToken", "type": "address"},
                    {"name": "refundReceiver", "type": "address"},
                    {"name": "nonce", "type": "uint256"},
                ],
            },
            "primaryType": "SafeTx",
            "domain": {
                "chainId": self.chain_id,
                "verifyingContract": self._checksum(self.safe_address),
            },
            "message": {
                "to": self._checksum(to),
                "value": value,
                "data": bytes.fromhex(data[2:] if data.startswith("0x") else data),
                "operation": operation,
                "safeTxGas": 0,
                "baseGas": 0,
                "gasPrice": 0,
                "gasToken": ZERO_ADDRESS,
                "refundReceiver": ZERO_ADDRESS,
                "nonce": nonce,
            },
        }

    async def _submit(self, request: Dict[str, Any]) -> RelayerTransaction:
        # build_hmac_signature rewrites single quotes, so none may reach the signed body
        body = json.dumps(request, separators=(",", ":")).replace("'", "\\u0027")
        headers = {}
        if self._builder_credentials:
            headers = build_builder_headers(self._builder_credentials, "POST", "/submit", body)

        data = await self._arequest("POST", "/submit", body=body, headers=headers, retry=False) or {}
        transaction_id = data.get("transactionID")
        if not transaction_id:
            raise RelayerError(f"Relayer did not accept transaction: {data}")

        return RelayerTransaction(self, transaction_id, data.get("transactionHash"))

    @staticmethod
    def _checksum(address: str) -> str:
        return Web3.to_checksum_address(address)
