from __future__ import annotations

"""Pydantic request schemas for the public API.

Token configuration fields are typed loosely on purpose: the ledger's own
validator checks them and reports every violated field at once, which a
422 from request parsing would hide.

Every mutating request is a SignedCall: the caller signs the canonical
message built from the call name, its nonce and the payload returned by the
model's payload() method (see launchpad.runtime.call_auth).
"""

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class TokenConfigRequest(BaseModel):
    name: Any = Field(default=None, description="Token name")
    symbol: Any = Field(default=None, description="Ticker, at most 10 characters")
    total_supply: Any = Field(default=None, description="Total supply in smallest units (18 decimals)")
    buy_tax: Any = Field(default=None, description="Buy tax in basis points, 0..2500")
    sell_tax: Any = Field(default=None, description="Sell tax in basis points, 0..2500")
    lp_percentage: Any = Field(default=None, description="LP share of tax in basis points, 5000..9500")
    marketing_wallet: Any = Field(default=None, description="Marketing wallet address")
    marketing_percentage: Any = Field(default=None, description="Marketing share in basis points, 0..1000")
    wallets: List[Any] = Field(default_factory=list, description="Additional wallet addresses")
    percentages: List[Any] = Field(default_factory=list, description="Share per additional wallet, 0..2000 each")

    model_config = {"extra": "allow"}

    def creation_args(self) -> dict:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "total_supply": self.total_supply,
            "buy_tax": self.buy_tax,
            "sell_tax": self.sell_tax,
            "lp_percentage": self.lp_percentage,
            "marketing_wallet": self.marketing_wallet,
            "marketing_percentage": self.marketing_percentage,
            "wallets": list(self.wallets),
            "percentages": list(self.percentages),
        }


class SignedCall(BaseModel):
    caller: str = Field(..., description="Address that signed the call")
    nonce: int = Field(..., ge=1, description="Must exceed the caller's last accepted nonce")
    signature: str = Field(..., description="Caller's signature over the canonical call message")

    model_config = {"extra": "allow"}

    def payload(self) -> Dict[str, Any]:
        return {}


class CreateTokenRequest(SignedCall, TokenConfigRequest):
    payment: int = Field(..., description="Native payment in wei, debited from the caller's balance")

    def payload(self) -> Dict[str, Any]:
        return dict(self.creation_args(), payment=self.payment)


class SetFeeRequest(SignedCall):
    fee: int = Field(..., description="New deployment fee in wei")

    def payload(self) -> Dict[str, Any]:
        return {"fee": self.fee}


class OwnerCallRequest(SignedCall):
    pass


class TransferOwnershipRequest(SignedCall):
    new_owner: str = Field(..., description="Address of the new factory owner")

    def payload(self) -> Dict[str, Any]:
        return {"new_owner": self.new_owner}


class CreditNativeRequest(SignedCall):
    account: str = Field(..., description="Account to credit")
    amount: int = Field(..., description="Deposit in wei")
    reference: str = Field(..., description="Unique deposit reference, e.g. the funding transaction hash")

    def payload(self) -> Dict[str, Any]:
        return {"account": self.account, "amount": self.amount, "reference": self.reference}


class TransferRequest(SignedCall):
    to: str = Field(..., description="Recipient address")
    amount: int = Field(..., description="Amount in smallest units")

    def payload(self) -> Dict[str, Any]:
        return {"to": self.to, "amount": self.amount}


class ApproveRequest(SignedCall):
    spender: str = Field(..., description="Spender address")
    amount: int = Field(..., description="Allowance in smallest units")

    def payload(self) -> Dict[str, Any]:
        return {"spender": self.spender, "amount": self.amount}


class TransferFromRequest(SignedCall):
    from_: str = Field(..., alias="from", description="Address whose balance is debited")
    to: str = Field(..., description="Recipient address")
    amount: int = Field(..., description="Amount in smallest units")

    model_config = {"extra": "allow", "populate_by_name": True}

    def payload(self) -> Dict[str, Any]:
        return {"from": self.from_, "to": self.to, "amount": self.amount}


class SetPoolRequest(SignedCall):
    pool: str = Field(..., description="Liquidity pool address")
    enabled: bool = Field(default=True, description="Register (true) or unregister (false)")

    def payload(self) -> Dict[str, Any]:
        return {"pool": self.pool, "enabled": self.enabled}
