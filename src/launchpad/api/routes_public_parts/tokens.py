from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from launchpad.api.routes_public_parts.common import _executor, _submit_signed
from launchpad.api.schemas import ApproveRequest, SetPoolRequest, TransferFromRequest, TransferRequest

router = APIRouter()

Json = Dict[str, Any]


@router.get("/tokens/{address}")
def token_info(request: Request, address: str) -> Json:
    ex = _executor(request)
    return {"ok": True, "token": ex.get_token(address)}


@router.get("/tokens/{address}/balances/{holder}")
def token_balance(request: Request, address: str, holder: str) -> Json:
    ex = _executor(request)
    return {"ok": True, "token": address, "holder": holder, "balance": ex.balance_of(address, holder)}


@router.get("/tokens/{address}/allowances/{owner}/{spender}")
def token_allowance(request: Request, address: str, owner: str, spender: str) -> Json:
    ex = _executor(request)
    return {
        "ok": True,
        "token": address,
        "owner": owner,
        "spender": spender,
        "allowance": ex.allowance(address, owner, spender),
    }


@router.post("/tokens/{address}/transfer")
def token_transfer(request: Request, address: str, body: TransferRequest) -> Json:
    return _submit_signed(request, "TOKEN_TRANSFER", body, token=address)


@router.post("/tokens/{address}/approve")
def token_approve(request: Request, address: str, body: ApproveRequest) -> Json:
    return _submit_signed(request, "TOKEN_APPROVE", body, token=address)


@router.post("/tokens/{address}/transfer_from")
def token_transfer_from(request: Request, address: str, body: TransferFromRequest) -> Json:
    return _submit_signed(request, "TOKEN_TRANSFER_FROM", body, token=address)


@router.post("/tokens/{address}/pools")
def token_set_pool(request: Request, address: str, body: SetPoolRequest) -> Json:
    return _submit_signed(request, "TOKEN_SET_POOL", body, token=address)
