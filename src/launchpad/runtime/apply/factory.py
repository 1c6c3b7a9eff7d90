# src/launchpad/runtime/apply/factory.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from launchpad.ledger.addresses import AddressValidator, get_address_validator
from launchpad.ledger.config_validator import validate
from launchpad.ledger.token_config import TOKEN_DECIMALS, TokenConfig
from launchpad.runtime.call_types import CallEnvelope
from launchpad.runtime.errors import (
    InsufficientBalance,
    InsufficientFee,
    InvalidArgument,
    InvalidConfiguration,
    Unauthorized,
)

Json = Dict[str, Any]

CREATION_ARGS = (
    "name",
    "symbol",
    "total_supply",
    "buy_tax",
    "sell_tax",
    "lp_percentage",
    "marketing_wallet",
    "marketing_percentage",
)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _wallet_sequences(payload: Json) -> Dict[str, List[Any]]:
    """`wallets` and `percentages` as lists; absent means empty.

    Any other shape is an InvalidConfiguration naming each offending field.
    """
    out: Dict[str, List[Any]] = {}
    errors: List[Json] = []
    for name in ("wallets", "percentages"):
        v = payload.get(name)
        if v is None:
            out[name] = []
        elif isinstance(v, (list, tuple)):
            out[name] = list(v)
        else:
            errors.append({"field": name, "code": "not_a_list", "message": f"{name} must be a list, got {type(v).__name__}"})
    if errors:
        raise InvalidConfiguration(errors[0]["field"], errors)
    return out


def _as_wei(v: Any, name: str) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise InvalidArgument("amount_not_integer", {"field": name, "value": repr(v)})
    if v < 0:
        raise InvalidArgument("amount_negative", {"field": name, "value": v})
    return int(v)


def _validator(state: Json) -> AddressValidator:
    return get_address_validator(str(state.get("network") or ""))


def _address(av: AddressValidator, v: Any, name: str) -> str:
    if not av.is_valid(v):
        raise InvalidArgument("invalid_address", {"field": name, "value": str(v)})
    return av.normalize(str(v))


def ensure_factory(state: Json) -> Json:
    fac = state.get("factory")
    if not isinstance(fac, dict):
        fac = {}
        state["factory"] = fac
    fac.setdefault("owner", "")
    fac.setdefault("deployment_fee", 0)
    fac.setdefault("accumulated_fees", 0)
    fac.setdefault("total_withdrawn", 0)
    fac.setdefault("allocation_policy", "headroom")
    fac.setdefault("salt", "")
    fac.setdefault("token_count", 0)
    fac.setdefault("records", [])
    fac.setdefault("user_tokens", {})
    fac.setdefault("withdrawals", [])
    fac.setdefault("deposits", {})
    return fac


def _require_owner(fac: Json, caller: str, action: str) -> None:
    if caller != str(fac.get("owner") or ""):
        raise Unauthorized(caller, action)


def _apply_create_token(state: Json, env: CallEnvelope) -> Json:
    """Canon: CREATE_TOKEN

    Fee gate first, then the creator's funded native balance, then the full
    validator. The client may have validated already; that is never relied
    on here. The payment moves from the creator's native balance into the
    fee accumulator.
    """
    payload = _as_dict(env.payload)
    fac = ensure_factory(state)
    av = _validator(state)

    creator = _address(av, env.caller, "caller")
    payment = _as_wei(payload.get("payment"), "payment")

    fee = int(fac.get("deployment_fee", 0))
    if payment < fee:
        raise InsufficientFee(fee, payment)

    native = state["native_balances"]
    held = int(native.get(creator, 0))
    if held < payment:
        raise InsufficientBalance(creator, held, payment, reason="payment_exceeds_native_balance")

    config = TokenConfig.from_creation_args(
        **{k: payload.get(k) for k in CREATION_ARGS},
        **_wallet_sequences(payload),
    )
    policy = str(fac.get("allocation_policy") or "headroom")
    result = validate(config, network=str(state["network"]), allocation_policy=policy)
    if not result.ok:
        first = result.errors[0]
        raise InvalidConfiguration(first.field, [e.to_json() for e in result.errors])

    tokens = state["tokens"]
    index = int(fac.get("token_count", 0))
    address = av.derive(f"{fac.get('salt')}:{creator}:{index}".encode("utf-8"))
    if address in tokens:
        raise InvalidArgument("token_address_collision", {"token": address, "index": index})

    wallets = [{"address": av.normalize(w.address), "percentage": int(w.percentage)} for w in config.additional_wallets]
    marketing = av.normalize(config.marketing_wallet)
    supply = int(config.total_supply)

    tokens[address] = {
        "address": address,
        "name": config.name.strip(),
        "symbol": config.symbol.strip(),
        "decimals": TOKEN_DECIMALS,
        "total_supply": supply,
        "buy_tax": int(config.buy_tax),
        "sell_tax": int(config.sell_tax),
        "lp_percentage": int(config.lp_percentage),
        "marketing_wallet": marketing,
        "marketing_percentage": int(config.marketing_percentage),
        "additional_wallets": wallets,
        "allocation_policy": policy,
        "creator": creator,
        "balances": {creator: supply},
        "allowances": {},
        "pools": [],
        "liquidity_accumulator": 0,
        "created_ms": int(env.ts_ms),
    }

    record_config = config.to_json()
    record_config.update(
        {
            "name": tokens[address]["name"],
            "symbol": tokens[address]["symbol"],
            "marketing_wallet": marketing,
            "additional_wallets": [dict(w) for w in wallets],
        }
    )
    fac["records"].append(
        {
            "index": index,
            "creator": creator,
            "token": address,
            "config": record_config,
            "created_ms": int(env.ts_ms),
        }
    )
    fac["user_tokens"].setdefault(creator, []).append(address)
    fac["token_count"] = index + 1
    native[creator] = held - payment
    fac["accumulated_fees"] = int(fac.get("accumulated_fees", 0)) + payment

    event = {
        "name": "TokenCreated",
        "token": address,
        "data": {
            "creator": creator,
            "token": address,
            "name": tokens[address]["name"],
            "symbol": tokens[address]["symbol"],
            "total_supply": supply,
            "buy_tax": int(config.buy_tax),
            "sell_tax": int(config.sell_tax),
            "lp_percentage": int(config.lp_percentage),
            "marketing_wallet": marketing,
            "marketing_percentage": int(config.marketing_percentage),
            "additional_wallets": [dict(w) for w in wallets],
            "payment": payment,
        },
    }
    return {"applied": "CREATE_TOKEN", "token": address, "index": index, "events": [event]}


def _apply_set_deployment_fee(state: Json, env: CallEnvelope) -> Json:
    fac = ensure_factory(state)
    caller = _address(_validator(state), env.caller, "caller")
    _require_owner(fac, caller, "SET_DEPLOYMENT_FEE")

    new_fee = _as_wei(_as_dict(env.payload).get("fee"), "fee")
    old_fee = int(fac.get("deployment_fee", 0))
    fac["deployment_fee"] = new_fee

    return {
        "applied": "SET_DEPLOYMENT_FEE",
        "deployment_fee": new_fee,
        "events": [{"name": "DeploymentFeeUpdated", "token": "", "data": {"old_fee": old_fee, "new_fee": new_fee}}],
    }


def _apply_withdraw_fees(state: Json, env: CallEnvelope) -> Json:
    fac = ensure_factory(state)
    caller = _address(_validator(state), env.caller, "caller")
    _require_owner(fac, caller, "WITHDRAW_FEES")

    amount = int(fac.get("accumulated_fees", 0))
    # Zero the accumulator before the payout is credited.
    fac["accumulated_fees"] = 0

    native = state["native_balances"]
    native[caller] = int(native.get(caller, 0)) + amount
    fac["total_withdrawn"] = int(fac.get("total_withdrawn", 0)) + amount
    fac["withdrawals"].append({"to": caller, "amount": amount, "ts_ms": int(env.ts_ms)})

    return {
        "applied": "WITHDRAW_FEES",
        "amount": amount,
        "events": [{"name": "FeesWithdrawn", "token": "", "data": {"to": caller, "amount": amount}}],
    }


def _apply_transfer_ownership(state: Json, env: CallEnvelope) -> Json:
    fac = ensure_factory(state)
    av = _validator(state)
    caller = _address(av, env.caller, "caller")
    _require_owner(fac, caller, "TRANSFER_OWNERSHIP")

    new_owner = _address(av, _as_dict(env.payload).get("new_owner"), "new_owner")
    if new_owner == av.zero_address:
        raise InvalidArgument("zero_address", {"field": "new_owner"})

    fac["owner"] = new_owner
    return {
        "applied": "TRANSFER_OWNERSHIP",
        "owner": new_owner,
        "events": [
            {"name": "OwnershipTransferred", "token": "", "data": {"previous_owner": caller, "new_owner": new_owner}}
        ],
    }


def _apply_credit_native(state: Json, env: CallEnvelope) -> Json:
    """Canon: CREDIT_NATIVE

    The owner attests a native-coin deposit observed on the settlement chain.
    Each deposit reference (usually the funding transaction hash) is credited
    at most once.
    """
    payload = _as_dict(env.payload)
    fac = ensure_factory(state)
    av = _validator(state)
    caller = _address(av, env.caller, "caller")
    _require_owner(fac, caller, "CREDIT_NATIVE")

    account = _address(av, payload.get("account"), "account")
    amount = _as_wei(payload.get("amount"), "amount")
    if amount == 0:
        raise InvalidArgument("amount_zero", {"field": "amount"})
    reference = str(payload.get("reference") or "").strip()
    if not reference:
        raise InvalidArgument("missing_reference", {"field": "reference"})
    if reference in fac["deposits"]:
        raise InvalidArgument("duplicate_deposit_reference", {"reference": reference})

    native = state["native_balances"]
    balance = int(native.get(account, 0)) + amount
    native[account] = balance
    fac["deposits"][reference] = {"account": account, "amount": amount, "ts_ms": int(env.ts_ms)}

    return {
        "applied": "CREDIT_NATIVE",
        "account": account,
        "balance": balance,
        "events": [
            {
                "name": "NativeDeposited",
                "token": "",
                "data": {"account": account, "amount": amount, "reference": reference},
            }
        ],
    }


FACTORY_CALLS = {
    "CREATE_TOKEN",
    "SET_DEPLOYMENT_FEE",
    "WITHDRAW_FEES",
    "TRANSFER_OWNERSHIP",
    "CREDIT_NATIVE",
}


def apply_factory(state: Json, env: CallEnvelope) -> Optional[Json]:
    t = str(env.call or "").strip().upper()
    if t not in FACTORY_CALLS:
        return None

    if t == "CREATE_TOKEN":
        return _apply_create_token(state, env)
    if t == "SET_DEPLOYMENT_FEE":
        return _apply_set_deployment_fee(state, env)
    if t == "WITHDRAW_FEES":
        return _apply_withdraw_fees(state, env)
    if t == "TRANSFER_OWNERSHIP":
        return _apply_transfer_ownership(state, env)
    if t == "CREDIT_NATIVE":
        return _apply_credit_native(state, env)

    return None


__all__ = ["apply_factory", "ensure_factory", "FACTORY_CALLS", "CREATION_ARGS"]
