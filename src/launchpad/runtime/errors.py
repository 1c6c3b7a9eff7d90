from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

Json = Dict[str, Any]


@dataclass
class LaunchpadError(Exception):
    """Canonical error type for factory and token call failures.

    Every LaunchpadError is a caller error: the executor discards the working
    copy of the state, so nothing the call touched is committed.
    """

    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"

    def to_json(self) -> Json:
        return {"code": self.code, "reason": self.reason, "details": dict(self.details or {})}


class InvalidConfiguration(LaunchpadError):
    def __init__(self, reason: str, errors: Optional[List[Json]] = None, details: Optional[Json] = None) -> None:
        d: Json = dict(details or {})
        d["errors"] = list(errors or [])
        super().__init__("invalid_configuration", reason, d)

    @property
    def errors(self) -> List[Json]:
        return list((self.details or {}).get("errors") or [])


class ArityMismatch(InvalidConfiguration):
    def __init__(self, wallets: int, percentages: int) -> None:
        super().__init__(
            "arity_mismatch",
            [
                {
                    "field": "additional_wallets",
                    "code": "arity_mismatch",
                    "message": f"wallets has {wallets} entries but percentages has {percentages}",
                }
            ],
            {"wallets": int(wallets), "percentages": int(percentages)},
        )


class InsufficientFee(LaunchpadError):
    def __init__(self, required: int, provided: int) -> None:
        super().__init__(
            "insufficient_fee",
            "payment_below_deployment_fee",
            {"required": int(required), "provided": int(provided)},
        )


class Unauthorized(LaunchpadError):
    def __init__(self, caller: str, action: str) -> None:
        super().__init__("unauthorized", "caller_not_owner", {"caller": caller, "action": action})


class InsufficientBalance(LaunchpadError):
    def __init__(self, holder: str, balance: int, amount: int, *, reason: str = "transfer_exceeds_balance") -> None:
        super().__init__(
            "insufficient_balance",
            reason,
            {"holder": holder, "balance": int(balance), "amount": int(amount)},
        )


class InsufficientAllowance(LaunchpadError):
    def __init__(self, owner: str, spender: str, allowance: int, amount: int) -> None:
        super().__init__(
            "insufficient_allowance",
            "transfer_exceeds_allowance",
            {"owner": owner, "spender": spender, "allowance": int(allowance), "amount": int(amount)},
        )


class TokenNotFound(LaunchpadError):
    def __init__(self, token: str) -> None:
        super().__init__("not_found", "token_not_found", {"token": token})


class InvalidArgument(LaunchpadError):
    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("invalid_argument", reason, details)


class SignatureRejected(LaunchpadError):
    """A network-submitted call whose signature or nonce does not check out."""

    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("unauthorized", reason, details)
