# src/launchpad/runtime/state_invariants.py
from __future__ import annotations

"""State normalization helpers.

Ledger state is a nested JSON-like dict mutated deterministically by the
apply/* modules. This module is the single place that checks the state is
dict-like and that the universally expected containers exist. Domain
containers (factory records, per-token books) stay with their apply module.
"""

from collections.abc import MutableMapping
from typing import Any, Dict

Json = Dict[str, Any]


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict with the core containers.

    Raises:
        TypeError: if st or one of its core containers has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for key in ("tokens", "native_balances", "nonces"):
        v = st.get(key)
        if v is None:
            st[key] = {}
        elif not isinstance(v, dict):
            raise TypeError(f"state[{key!r}] must be dict, got {type(v)}")

    if not str(st.get("network") or "").strip():
        raise TypeError("state['network'] must be set at genesis")

    return st  # type: ignore[return-value]


def token_supply_holds(token: Json) -> bool:
    """Balances plus the liquidity accumulator always add up to the fixed supply."""
    balances = token.get("balances") or {}
    held = sum(int(v) for v in balances.values())
    return held + int(token.get("liquidity_accumulator", 0)) == int(token.get("total_supply", 0))
