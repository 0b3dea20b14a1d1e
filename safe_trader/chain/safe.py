"""Deterministic Safe address derivation (CREATE2 through the Safe proxy factory)."""

from eth_abi import encode as eth_abi_encode
from web3 import Web3

from .contracts import POLYGON_CONTRACTS, ContractConfig


def _to_bytes(hex_value: str) -> bytes:
    return bytes.fromhex(hex_value[2:] if hex_value.startswith("0x") else hex_value)


def derive_safe_address(owner: str, contracts: ContractConfig = POLYGON_CONTRACTS) -> str:
    """
    Compute the Safe address owned by an EOA.

    The factory deploys with salt = keccak256(abi.encode(owner)), so the address
    depends only on the owner, the factory and the proxy init code hash.

    Args:
        owner: EOA address (any case)
        contracts: Chain contract set holding the factory and init code hash

    Returns:
        Checksummed Safe address
    """
    owner_checksum = Web3.to_checksum_address(owner)
    salt = Web3.keccak(eth_abi_encode(["address"], [owner_checksum]))
    factory = _to_bytes(Web3.to_checksum_address(contracts.safe_factory))
    init_code_hash = _to_bytes(contracts.safe_init_code_hash)

    digest = Web3.keccak(b"\xff" + factory + salt + init_code_hash)
    return Web3.to_checksum_address("0x" + bytes(digest[12:]).hex())
