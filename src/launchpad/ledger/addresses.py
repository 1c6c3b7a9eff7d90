"""Network-keyed address validation.

Address validity is a property of the target network, not of the token
configuration: EVM networks use 20-byte hex addresses, Solana uses 32-byte
base58 public keys. Callers pick a validator with get_address_validator(network)
and never hard-code a length check.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Dict

import base58
from web3 import Web3


class UnknownNetwork(ValueError):
    pass


class AddressValidator:
    family: str = ""
    byte_length: int = 0
    zero_address: str = ""

    def is_valid(self, addr: Any) -> bool:
        raise NotImplementedError

    def normalize(self, addr: str) -> str:
        """Return the canonical form used as a ledger key. Requires is_valid(addr)."""
        raise NotImplementedError

    def derive(self, seed: bytes) -> str:
        """Deterministically derive a fresh address (used for new token contracts)."""
        raise NotImplementedError

    def is_zero(self, addr: str) -> bool:
        return self.is_valid(addr) and self.normalize(addr) == self.zero_address


class EvmAddressValidator(AddressValidator):
    family = "evm"
    byte_length = 20
    zero_address = "0x" + "00" * 20

    def is_valid(self, addr: Any) -> bool:
        if not isinstance(addr, str):
            return False
        s = addr.strip()
        # Web3.is_address also accepts 40 hex chars without prefix; we don't.
        if len(s) != 42 or not s.startswith("0x"):
            return False
        if not Web3.is_address(s):
            return False
        # Mixed case is an EIP-55 checksum claim and must verify.
        body = s[2:]
        if body != body.lower() and body != body.upper():
            return bool(Web3.is_checksum_address(s))
        return True

    def normalize(self, addr: str) -> str:
        return str(Web3.to_checksum_address(addr.strip()))

    def derive(self, seed: bytes) -> str:
        digest = bytes(Web3.keccak(seed))
        return str(Web3.to_checksum_address("0x" + digest[-self.byte_length :].hex()))


class SolanaAddressValidator(AddressValidator):
    family = "solana"
    byte_length = 32
    zero_address = "1" * 32

    def is_valid(self, addr: Any) -> bool:
        if not isinstance(addr, str):
            return False
        s = addr.strip()
        if not s or len(s) > 44:
            return False
        try:
            raw = base58.b58decode(s)
        except ValueError:
            return False
        return len(raw) == self.byte_length

    def normalize(self, addr: str) -> str:
        return addr.strip()

    def derive(self, seed: bytes) -> str:
        return base58.b58encode(hashlib.sha256(seed).digest()).decode("ascii")


@dataclass(frozen=True)
class NetworkInfo:
    name: str
    family: str
    chain_id: int


NETWORKS: Dict[str, NetworkInfo] = {
    "sepolia": NetworkInfo("sepolia", "evm", 11155111),
    "goerli": NetworkInfo("goerli", "evm", 5),
    "mainnet": NetworkInfo("mainnet", "evm", 1),
    "solana-devnet": NetworkInfo("solana-devnet", "solana", 0),
    "solana-mainnet": NetworkInfo("solana-mainnet", "solana", 0),
}

_VALIDATORS: Dict[str, AddressValidator] = {
    "evm": EvmAddressValidator(),
    "solana": SolanaAddressValidator(),
}


def network_info(network: str) -> NetworkInfo:
    key = str(network or "").strip().lower()
    info = NETWORKS.get(key)
    if info is None:
        raise UnknownNetwork(f"unknown network {network!r}; expected one of {sorted(NETWORKS)}")
    return info


def get_address_validator(network: str) -> AddressValidator:
    return _VALIDATORS[network_info(network).family]
