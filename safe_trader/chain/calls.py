"""Calldata encoders for the contract calls relayed through the Safe."""

from dataclasses import dataclass
from typing import List, Sequence

from eth_abi import encode as eth_abi_encode
from web3 import Web3

from .contracts import MAX_UINT256, ZERO_BYTES32


@dataclass(frozen=True)
class RelayerCall:
    to: str
    data: str
    value: int = 0

    def to_dict(self):
        return {"to": self.to, "data": self.data, "value": str(self.value)}


def _hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def encode_call(signature: str, arg_types: Sequence[str], args: Sequence) -> str:
    """ABI-encode a function call. signature is e.g. 'transfer(address,uint256)'."""
    selector = bytes(Web3.keccak(text=signature)[:4])
    return "0x" + (selector + eth_abi_encode(list(arg_types), list(args))).hex()


def erc20_approve(token: str, spender: str, amount: int = MAX_UINT256) -> RelayerCall:
    data = encode_call(
        "approve(address,uint256)",
        ["address", "uint256"],
        [Web3.to_checksum_address(spender), amount],
    )
    return RelayerCall(to=Web3.to_checksum_address(token), data=data)


def erc20_transfer(token: str, recipient: str, amount: int) -> RelayerCall:
    data = encode_call(
        "transfer(address,uint256)",
        ["address", "uint256"],
        [Web3.to_checksum_address(recipient), amount],
    )
    return RelayerCall(to=Web3.to_checksum_address(token), data=data)


def set_approval_for_all(token: str, operator: str, approved: bool = True) -> RelayerCall:
    data = encode_call(
        "setApprovalForAll(address,bool)",
        ["address", "bool"],
        [Web3.to_checksum_address(operator), approved],
    )
    return RelayerCall(to=Web3.to_checksum_address(token), data=data)


def redeem_positions(
    conditional_tokens: str,
    collateral: str,
    condition_id: str,
    index_sets: List[int],
) -> RelayerCall:
    """CTF redeemPositions with the root (zero) parent collection."""
    data = encode_call(
        "redeemPositions(address,bytes32,bytes32,uint256[])",
        ["address", "bytes32", "bytes32", "uint256[]"],
        [
            Web3.to_checksum_address(collateral),
            _hex_to_bytes(ZERO_BYTES32),
            _hex_to_bytes(condition_id),
            list(index_sets),
        ],
    )
    return RelayerCall(to=Web3.to_checksum_address(conditional_tokens), data=data)


def encode_multisend(calls: Sequence[RelayerCall]) -> str:
    """
    Calldata for MultiSend.multiSend(bytes) batching plain CALLs.

    Each packed entry is operation (uint8) | to (20 bytes) | value (uint256) |
    data length (uint256) | data.
    """
    packed = b""
    for call in calls:
        data = _hex_to_bytes(call.data)
        packed += (
            b"\x00"
            + _hex_to_bytes(Web3.to_checksum_address(call.to))
            + call.value.to_bytes(32, "big")
            + len(data).to_bytes(32, "big")
            + data
        )
    return encode_call("multiSend(bytes)", ["bytes"], [packed])
