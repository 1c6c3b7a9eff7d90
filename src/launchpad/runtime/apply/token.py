# src/launchpad/runtime/apply/token.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from launchpad.ledger.addresses import AddressValidator, get_address_validator
from launchpad.ledger.token_config import BPS_DENOMINATOR
from launchpad.runtime.call_types import CallEnvelope
from launchpad.runtime.errors import (
    InsufficientAllowance,
    InsufficientBalance,
    InvalidArgument,
    TokenNotFound,
    Unauthorized,
)
from launchpad.runtime.pool_registry import BUY, SELL, DEFAULT_POOL_REGISTRY, PoolRegistry, classify_transfer

Json = Dict[str, Any]

# (kind, recipient, amount); kind is one of lp | marketing | wallet | creator
TaxShare = Tuple[str, str, int]


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _as_amount(v: Any, name: str) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise InvalidArgument("amount_not_integer", {"field": name, "value": repr(v)})
    if v < 0:
        raise InvalidArgument("amount_negative", {"field": name, "value": v})
    return int(v)


def _validator(state: Json) -> AddressValidator:
    return get_address_validator(str(state.get("network") or ""))


def _address(av: AddressValidator, v: Any, name: str, *, allow_zero: bool = True) -> str:
    if not av.is_valid(v):
        raise InvalidArgument("invalid_address", {"field": name, "value": str(v)})
    addr = av.normalize(str(v))
    if not allow_zero and addr == av.zero_address:
        raise InvalidArgument("zero_address", {"field": name})
    return addr


def get_token(state: Json, token: Any) -> Json:
    tokens = _as_dict(state.get("tokens"))
    key = str(token or "").strip()
    rec = tokens.get(key)
    if not isinstance(rec, dict):
        av = _validator(state)
        if av.is_valid(key):
            rec = tokens.get(av.normalize(key))
    if not isinstance(rec, dict):
        raise TokenNotFound(key)
    return rec


# ---------------------------------------------------------------------------
# Tax split
# ---------------------------------------------------------------------------


def compute_tax_split(token: Json, tax: int) -> List[TaxShare]:
    """Split a tax amount across the token's tax-eligible recipients.

    Recipients are marketing, then each additional wallet, then (policy
    "creator") the creator weighted by the unallocated bps. Each share is
    `tax * pct // base` with `base` the sum of those weights; lp_percentage is
    not part of the base. The integer remainder goes to the last additional
    wallet, or to marketing when there are none. When the base is zero the
    whole tax goes to the token's liquidity accumulator. The amounts always
    sum to `tax`.
    """
    policy = str(token.get("allocation_policy") or "headroom")
    lp = int(token.get("lp_percentage", 0))

    targets: List[Tuple[str, str, int]] = [
        ("marketing", str(token["marketing_wallet"]), int(token.get("marketing_percentage", 0))),
    ]
    for w in token.get("additional_wallets") or []:
        targets.append(("wallet", str(w["address"]), int(w["percentage"])))

    if policy == "creator":
        rest = BPS_DENOMINATOR - lp - sum(pct for _, _, pct in targets)
        if rest > 0:
            targets.append(("creator", str(token["creator"]), rest))

    base = sum(pct for _, _, pct in targets)
    if tax <= 0:
        return [(kind, addr, 0) for kind, addr, _ in targets]
    if base <= 0:
        return [("lp", str(token["address"]), tax)]

    amounts = [tax * pct // base for _, _, pct in targets]
    sink = 0
    for i, (kind, _, _) in enumerate(targets):
        if kind == "wallet":
            sink = i
    amounts[sink] += tax - sum(amounts)

    return [(kind, addr, amt) for (kind, addr, _), amt in zip(targets, amounts)]


# ---------------------------------------------------------------------------
# Balance movement
# ---------------------------------------------------------------------------


def _credit(balances: Json, holder: str, amount: int) -> None:
    balances[holder] = int(balances.get(holder, 0)) + int(amount)


def move_tokens(
    state: Json,
    token: Json,
    sender: str,
    to: str,
    amount: int,
    *,
    pools: PoolRegistry = DEFAULT_POOL_REGISTRY,
) -> Json:
    """Debit `amount` from sender, credit the net to `to`, route the tax.

    Raises InsufficientBalance before touching anything when the sender is
    short. Returns the transfer summary plus its events.
    """
    balances = token.setdefault("balances", {})
    bal = int(balances.get(sender, 0))
    if bal < amount:
        raise InsufficientBalance(sender, bal, amount)

    kind = classify_transfer(pools, state, str(token["address"]), sender, to)
    if kind == BUY:
        rate = int(token.get("buy_tax", 0))
    elif kind == SELL:
        rate = int(token.get("sell_tax", 0))
    else:
        rate = 0

    tax = amount * rate // BPS_DENOMINATOR
    net = amount - tax

    balances[sender] = bal - amount
    _credit(balances, to, net)

    addr = str(token["address"])
    events: List[Json] = [{"name": "Transfer", "token": addr, "data": {"from": sender, "to": to, "amount": net}}]

    shares = compute_tax_split(token, tax)
    for share_kind, recipient, share in shares:
        if share <= 0:
            continue
        if share_kind == "lp":
            token["liquidity_accumulator"] = int(token.get("liquidity_accumulator", 0)) + share
        else:
            _credit(balances, recipient, share)
        events.append({"name": "Transfer", "token": addr, "data": {"from": sender, "to": recipient, "amount": share}})

    if tax > 0:
        events.append(
            {
                "name": "TaxCollected",
                "token": addr,
                "data": {
                    "kind": kind,
                    "amount": amount,
                    "tax": tax,
                    "shares": [{"kind": k, "to": r, "amount": a} for k, r, a in shares],
                },
            }
        )

    return {"kind": kind, "amount": amount, "tax": tax, "net": net, "events": events}


# ---------------------------------------------------------------------------
# Call appliers
# ---------------------------------------------------------------------------


def _apply_transfer(state: Json, env: CallEnvelope, pools: PoolRegistry) -> Json:
    payload = _as_dict(env.payload)
    av = _validator(state)
    token = get_token(state, payload.get("token"))
    sender = _address(av, env.caller, "caller")
    to = _address(av, payload.get("to"), "to", allow_zero=False)
    amount = _as_amount(payload.get("amount"), "amount")

    out = move_tokens(state, token, sender, to, amount, pools=pools)
    out["applied"] = "TOKEN_TRANSFER"
    out["token"] = token["address"]
    return out


def _apply_approve(state: Json, env: CallEnvelope) -> Json:
    payload = _as_dict(env.payload)
    av = _validator(state)
    token = get_token(state, payload.get("token"))
    owner = _address(av, env.caller, "caller")
    spender = _address(av, payload.get("spender"), "spender", allow_zero=False)
    amount = _as_amount(payload.get("amount"), "amount")

    allowances = token.setdefault("allowances", {})
    mine = allowances.setdefault(owner, {})
    mine[spender] = amount

    return {
        "applied": "TOKEN_APPROVE",
        "token": token["address"],
        "events": [
            {"name": "Approval", "token": token["address"], "data": {"owner": owner, "spender": spender, "amount": amount}}
        ],
    }


def _apply_transfer_from(state: Json, env: CallEnvelope, pools: PoolRegistry) -> Json:
    payload = _as_dict(env.payload)
    av = _validator(state)
    token = get_token(state, payload.get("token"))
    spender = _address(av, env.caller, "caller")
    owner = _address(av, payload.get("from"), "from")
    to = _address(av, payload.get("to"), "to", allow_zero=False)
    amount = _as_amount(payload.get("amount"), "amount")

    allowances = token.setdefault("allowances", {})
    mine = allowances.setdefault(owner, {})
    allowed = int(mine.get(spender, 0))
    if allowed < amount:
        raise InsufficientAllowance(owner, spender, allowed, amount)

    # move_tokens raises before mutating, so the allowance is only spent on success.
    out = move_tokens(state, token, owner, to, amount, pools=pools)
    mine[spender] = allowed - amount

    out["applied"] = "TOKEN_TRANSFER_FROM"
    out["token"] = token["address"]
    return out


def _apply_set_pool(state: Json, env: CallEnvelope) -> Json:
    payload = _as_dict(env.payload)
    av = _validator(state)
    token = get_token(state, payload.get("token"))
    caller = _address(av, env.caller, "caller")
    if caller != token.get("creator"):
        raise Unauthorized(caller, "TOKEN_SET_POOL")

    pool = _address(av, payload.get("pool"), "pool", allow_zero=False)
    enabled = payload.get("enabled", True)
    if not isinstance(enabled, bool):
        raise InvalidArgument("enabled_not_bool", {"field": "enabled", "value": repr(enabled)})

    pools = token.setdefault("pools", [])
    if enabled and pool not in pools:
        pools.append(pool)
    if not enabled and pool in pools:
        pools.remove(pool)

    return {
        "applied": "TOKEN_SET_POOL",
        "token": token["address"],
        "events": [{"name": "PoolUpdated", "token": token["address"], "data": {"pool": pool, "enabled": enabled}}],
    }


TOKEN_CALLS = {
    "TOKEN_TRANSFER",
    "TOKEN_APPROVE",
    "TOKEN_TRANSFER_FROM",
    "TOKEN_SET_POOL",
}


def apply_token(state: Json, env: CallEnvelope, *, pools: Optional[PoolRegistry] = None) -> Optional[Json]:
    t = str(env.call or "").strip().upper()
    if t not in TOKEN_CALLS:
        return None

    reg = pools or DEFAULT_POOL_REGISTRY

    if t == "TOKEN_TRANSFER":
        return _apply_transfer(state, env, reg)
    if t == "TOKEN_APPROVE":
        return _apply_approve(state, env)
    if t == "TOKEN_TRANSFER_FROM":
        return _apply_transfer_from(state, env, reg)
    if t == "TOKEN_SET_POOL":
        return _apply_set_pool(state, env)

    return None


__all__ = ["apply_token", "compute_tax_split", "move_tokens", "get_token", "TOKEN_CALLS"]
