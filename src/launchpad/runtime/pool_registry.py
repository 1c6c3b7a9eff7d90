from __future__ import annotations

from typing import Any, Dict, Protocol

Json = Dict[str, Any]

TRANSFER = "transfer"
BUY = "buy"
SELL = "sell"


class PoolRegistry(Protocol):
    """Answers whether an address is a liquidity pool for a token.

    This is the seam to the liquidity-pool integration; the token engine only
    asks the question and never decides it.
    """

    def is_pool(self, state: Json, token: str, address: str) -> bool: ...


class LedgerPoolRegistry:
    """Pool registry backed by the token's own `pools` list in ledger state."""

    def is_pool(self, state: Json, token: str, address: str) -> bool:
        tokens = state.get("tokens")
        if not isinstance(tokens, dict):
            return False
        rec = tokens.get(token)
        if not isinstance(rec, dict):
            return False
        pools = rec.get("pools")
        return isinstance(pools, list) and address in pools


DEFAULT_POOL_REGISTRY = LedgerPoolRegistry()


def classify_transfer(registry: PoolRegistry, state: Json, token: str, sender: str, to: str) -> str:
    """Buy when tokens leave a pool, sell when they enter one, plain otherwise."""
    if registry.is_pool(state, token, sender):
        return BUY
    if registry.is_pool(state, token, to):
        return SELL
    return TRANSFER
