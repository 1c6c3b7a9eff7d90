# src/launchpad/runtime/call_auth.py
"""Signed call envelopes.

A call that arrives over the network names its caller, a nonce and a
signature over the canonical message

    {"call", "caller", "network", "nonce", "payload"}

encoded as compact, key-sorted JSON. The signature must come from the
caller's own key:

  - EVM networks: an EIP-191 personal-sign signature (65 bytes, hex); the
    recovered address must equal the caller.
  - Solana: an ed25519 signature (hex or base64) verified against the
    caller's public key, which is the base58 address itself.

The nonce must be strictly greater than the last nonce the ledger accepted
from that caller, so a captured envelope cannot be replayed.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Dict

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from launchpad.ledger.addresses import get_address_validator, network_info
from launchpad.runtime.call_types import CallEnvelope
from launchpad.runtime.errors import SignatureRejected

Json = Dict[str, Any]


def canonical_call_message(*, network: str, call: str, caller: str, nonce: int, payload: Any) -> bytes:
    obj: Json = {
        "call": str(call).strip().upper(),
        "caller": str(caller).strip(),
        "network": str(network).strip().lower(),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _decode_sig(s: str) -> bytes:
    s = s.strip()
    if s.startswith("0x"):
        s = s[2:]
    try:
        return bytes.fromhex(s)
    except ValueError:
        pass
    try:
        padding = "=" * (-len(s) % 4)
        return base64.b64decode((s + padding).replace("-", "+").replace("_", "/"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise SignatureRejected("bad_signature_encoding") from e


def _recover_evm(message: bytes, sig: bytes) -> str:
    try:
        return str(Account.recover_message(encode_defunct(primitive=message), signature=sig))
    except Exception as e:
        # eth_account raises several unrelated types for malformed signatures.
        raise SignatureRejected("bad_signature", {"error": type(e).__name__}) from e


def _verify_ed25519(message: bytes, sig: bytes, caller: str) -> bool:
    try:
        Ed25519PublicKey.from_public_bytes(base58.b58decode(caller)).verify(sig, message)
        return True
    except (InvalidSignature, ValueError):
        return False


def verify_call_signature(network: str, env: CallEnvelope) -> str:
    """Check `env` is signed by its caller; returns the normalized caller.

    Raises SignatureRejected when the nonce or signature is missing or the
    signature does not belong to the caller.
    """
    if env.nonce is None or int(env.nonce) <= 0:
        raise SignatureRejected("missing_nonce")
    if not env.sig:
        raise SignatureRejected("missing_signature")

    av = get_address_validator(network)
    if not av.is_valid(env.caller):
        raise SignatureRejected("invalid_caller", {"caller": env.caller})
    caller = av.normalize(env.caller)

    # The message names the normalized caller, so any accepted spelling of the
    # address verifies against the same signature.
    message = canonical_call_message(
        network=network, call=env.call, caller=caller, nonce=int(env.nonce), payload=env.payload
    )
    sig = _decode_sig(env.sig)
    if network_info(network).family == "evm":
        ok = av.normalize(_recover_evm(message, sig)) == caller
    else:
        ok = _verify_ed25519(message, sig, caller)
    if not ok:
        raise SignatureRejected("signature_does_not_match_caller", {"caller": caller})
    return caller


def check_and_bump_nonce(state: Json, caller: str, nonce: int) -> None:
    nonces = state.setdefault("nonces", {})
    last = int(nonces.get(caller, 0))
    if int(nonce) <= last:
        raise SignatureRejected("stale_nonce", {"caller": caller, "nonce": int(nonce), "last": last})
    nonces[caller] = int(nonce)


# ---------------------------------------------------------------------------
# Client-side signing (SDKs, scripts, tests)
# ---------------------------------------------------------------------------


def sign_call_evm(*, network: str, call: str, caller: str, nonce: int, payload: Json, private_key: Any) -> str:
    caller = get_address_validator(network).normalize(caller)
    msg = canonical_call_message(network=network, call=call, caller=caller, nonce=nonce, payload=payload)
    signed = Account.sign_message(encode_defunct(primitive=msg), private_key=private_key)
    return Web3.to_hex(signed.signature)


def sign_call_ed25519(
    *, network: str, call: str, caller: str, nonce: int, payload: Json, private_key: Ed25519PrivateKey
) -> str:
    caller = get_address_validator(network).normalize(caller)
    msg = canonical_call_message(network=network, call=call, caller=caller, nonce=nonce, payload=payload)
    return private_key.sign(msg).hex()


__all__ = [
    "canonical_call_message",
    "check_and_bump_nonce",
    "sign_call_ed25519",
    "sign_call_evm",
    "verify_call_signature",
]
