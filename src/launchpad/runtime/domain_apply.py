# src/launchpad/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying call envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from launchpad.runtime.apply.factory import apply_factory
from launchpad.runtime.apply.token import apply_token
from launchpad.runtime.call_auth import check_and_bump_nonce, verify_call_signature
from launchpad.runtime.call_types import CallEnvelope
from launchpad.runtime.errors import LaunchpadError
from launchpad.runtime.pool_registry import PoolRegistry
from launchpad.runtime.state_invariants import ensure_state

Json = Dict[str, Any]


def apply_call(
    state: Json,
    env: Any,
    *,
    pools: Optional[PoolRegistry] = None,
    require_signature: bool = False,
) -> Json:
    """Dispatch a CallEnvelope to the applier that claims it.

    A signed envelope (or any envelope when require_signature is set) must
    carry a valid signature by its caller and a fresh nonce; the nonce is
    recorded in state["nonces"] before the call is applied.

    Mutates `state` in place. On LaunchpadError the state may be partially
    written; callers that need atomicity use apply_call_atomic() or apply on
    a copy (the executor does the latter).
    """
    ensure_state(state)

    env_norm = CallEnvelope.from_json(env)
    t = env_norm.call
    if not t:
        raise LaunchpadError("invalid_call", "missing_call", {"call": t})

    if require_signature or env_norm.signed:
        caller = verify_call_signature(str(state["network"]), env_norm)
        check_and_bump_nonce(state, caller, int(env_norm.nonce or 0))

    out = apply_factory(state, env_norm)
    if out is not None:
        return out

    out = apply_token(state, env_norm, pools=pools)
    if out is not None:
        return out

    raise LaunchpadError("call_unimplemented", "call_not_implemented", {"call": t})


def apply_call_atomic(
    state: Json,
    env: Any,
    *,
    pools: Optional[PoolRegistry] = None,
    require_signature: bool = False,
) -> Json:
    """Apply a call with fail-atomic semantics.

    On success `state` is updated in place; on LaunchpadError it is left
    exactly as it was.
    """
    snapshot = copy.deepcopy(state)
    meta = apply_call(snapshot, env, pools=pools, require_signature=require_signature)

    state.clear()
    state.update(snapshot)
    return meta


__all__ = ["LaunchpadError", "apply_call", "apply_call_atomic", "Json"]
