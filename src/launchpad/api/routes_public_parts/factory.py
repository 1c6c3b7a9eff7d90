from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from launchpad.api.routes_public_parts.common import _executor, _snapshot, _submit_signed
from launchpad.api.schemas import (
    CreateTokenRequest,
    CreditNativeRequest,
    OwnerCallRequest,
    SetFeeRequest,
    TokenConfigRequest,
    TransferOwnershipRequest,
)
from launchpad.ledger.config_validator import allocated_bps, remaining_display_bps, validate
from launchpad.ledger.token_config import TokenConfig

router = APIRouter()

Json = Dict[str, Any]


@router.get("/factory")
def factory_info(request: Request) -> Json:
    st = _snapshot(request)
    fac = st.get("factory") or {}
    return {
        "ok": True,
        "network": st.get("network"),
        "owner": fac.get("owner"),
        "deployment_fee": int(fac.get("deployment_fee", 0)),
        "accumulated_fees": int(fac.get("accumulated_fees", 0)),
        "total_withdrawn": int(fac.get("total_withdrawn", 0)),
        "token_count": int(fac.get("token_count", 0)),
        "allocation_policy": fac.get("allocation_policy"),
    }


@router.post("/factory/validate")
def factory_validate(request: Request, body: TokenConfigRequest) -> Json:
    """Advisory validation for a form; the factory re-validates on creation.

    The remaining share is clamped for display only.
    """
    st = _snapshot(request)
    fac = st.get("factory") or {}
    config = TokenConfig.from_creation_args(**body.creation_args())
    result = validate(
        config,
        network=str(st.get("network") or ""),
        allocation_policy=str(fac.get("allocation_policy") or "headroom"),
    )
    return {
        "ok": True,
        "valid": result.ok,
        "errors": [e.to_json() for e in result.errors],
        "allocated_bps": allocated_bps(config),
        "remaining_bps": remaining_display_bps(config),
    }


@router.post("/factory/tokens")
def factory_create_token(request: Request, body: CreateTokenRequest) -> Json:
    return _submit_signed(request, "CREATE_TOKEN", body)


@router.get("/factory/users/{address}/tokens")
def factory_user_tokens(request: Request, address: str) -> Json:
    ex = _executor(request)
    return {"ok": True, "address": address, "tokens": ex.get_user_tokens(address)}


@router.post("/factory/fee")
def factory_set_fee(request: Request, body: SetFeeRequest) -> Json:
    return _submit_signed(request, "SET_DEPLOYMENT_FEE", body)


@router.post("/factory/withdraw")
def factory_withdraw(request: Request, body: OwnerCallRequest) -> Json:
    return _submit_signed(request, "WITHDRAW_FEES", body)


@router.post("/factory/owner")
def factory_transfer_ownership(request: Request, body: TransferOwnershipRequest) -> Json:
    return _submit_signed(request, "TRANSFER_OWNERSHIP", body)


@router.post("/factory/deposits")
def factory_credit_native(request: Request, body: CreditNativeRequest) -> Json:
    """Owner-attested native deposit; each reference is credited once."""
    return _submit_signed(request, "CREDIT_NATIVE", body)


@router.get("/accounts/{address}")
def account_info(request: Request, address: str) -> Json:
    ex = _executor(request)
    return {
        "ok": True,
        "address": address,
        "native_balance": ex.native_balance_of(address),
        "nonce": ex.nonce_of(address),
    }
