from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from launchpad.ledger.addresses import AddressValidator, get_address_validator
from launchpad.ledger.token_config import BPS_DENOMINATOR, TokenConfig

Json = Dict[str, Any]

MAX_SYMBOL_LEN = 10

TAX_MAX_BPS = 2_500
LP_MIN_BPS = 5_000
LP_MAX_BPS = 9_500
MARKETING_MAX_BPS = 1_000
WALLET_MAX_BPS = 2_000

ALLOCATION_POLICIES = ("headroom", "exact", "creator")


@dataclass(frozen=True)
class FieldError:
    field: str
    code: str
    message: str

    def to_json(self) -> Json:
        return {"field": self.field, "code": self.code, "message": self.message}


@dataclass(frozen=True)
class ValidationResult:
    errors: Tuple[FieldError, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.errors

    def fields(self) -> List[str]:
        return [e.field for e in self.errors]

    def to_json(self) -> Json:
        return {"ok": self.ok, "errors": [e.to_json() for e in self.errors]}


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _check_bps(errors: List[FieldError], name: str, v: Any, lo: int, hi: int) -> None:
    if not _is_int(v):
        errors.append(FieldError(name, "not_integer", f"{name} must be an integer number of basis points"))
        return
    if v < lo or v > hi:
        errors.append(FieldError(name, "out_of_range", f"{name} must be between {lo} and {hi} basis points"))


def _check_text(errors: List[FieldError], name: str, v: Any, max_len: Optional[int] = None) -> None:
    if not isinstance(v, str) or not v.strip():
        errors.append(FieldError(name, "required", f"{name} is required"))
        return
    if max_len is not None and len(v.strip()) > max_len:
        errors.append(FieldError(name, "too_long", f"{name} must be {max_len} characters or less"))


def _check_address(errors: List[FieldError], name: str, v: Any, av: AddressValidator) -> None:
    if not av.is_valid(v):
        errors.append(FieldError(name, "invalid_address", f"{name} is not a valid {av.family} address"))
        return
    if av.is_zero(v):
        errors.append(FieldError(name, "zero_address", f"{name} must not be the zero address"))


def allocated_bps(config: TokenConfig) -> int:
    """Sum of LP, marketing and additional wallet shares. Non-integers count as 0."""
    total = 0
    for v in [config.lp_percentage, config.marketing_percentage] + [w.percentage for w in config.additional_wallets]:
        if _is_int(v):
            total += v
    return total


def remaining_display_bps(config: TokenConfig) -> int:
    """Unallocated share for display. Clamped at zero; never used to accept a config."""
    return max(0, BPS_DENOMINATOR - allocated_bps(config))


def validate(
    config: TokenConfig,
    *,
    network: str = "sepolia",
    allocation_policy: str = "headroom",
) -> ValidationResult:
    """Check every invariant of a token configuration.

    Pure and deterministic. All checks run; the result lists every violated
    field so a client can report them together. The factory runs this same
    function again before issuing, whatever the client already checked.
    """
    if allocation_policy not in ALLOCATION_POLICIES:
        raise ValueError(f"allocation_policy must be one of {ALLOCATION_POLICIES}; got {allocation_policy!r}")

    av = get_address_validator(network)
    errors: List[FieldError] = []

    _check_text(errors, "name", config.name)
    _check_text(errors, "symbol", config.symbol, MAX_SYMBOL_LEN)

    if not _is_int(config.total_supply):
        errors.append(FieldError("total_supply", "not_integer", "total_supply must be an integer"))
    elif config.total_supply <= 0:
        errors.append(FieldError("total_supply", "out_of_range", "total_supply must be positive"))

    _check_bps(errors, "buy_tax", config.buy_tax, 0, TAX_MAX_BPS)
    _check_bps(errors, "sell_tax", config.sell_tax, 0, TAX_MAX_BPS)
    _check_bps(errors, "lp_percentage", config.lp_percentage, LP_MIN_BPS, LP_MAX_BPS)

    _check_address(errors, "marketing_wallet", config.marketing_wallet, av)
    _check_bps(errors, "marketing_percentage", config.marketing_percentage, 0, MARKETING_MAX_BPS)

    for i, w in enumerate(config.additional_wallets):
        _check_address(errors, f"additional_wallets[{i}].address", w.address, av)
        _check_bps(errors, f"additional_wallets[{i}].percentage", w.percentage, 0, WALLET_MAX_BPS)

    allocated = allocated_bps(config)
    if allocated > BPS_DENOMINATOR:
        errors.append(
            FieldError(
                "allocation",
                "over_allocated",
                f"lp + marketing + wallets allocate {allocated} basis points; at most {BPS_DENOMINATOR} allowed",
            )
        )
    elif allocation_policy == "exact" and allocated != BPS_DENOMINATOR:
        errors.append(
            FieldError(
                "allocation",
                "under_allocated",
                f"lp + marketing + wallets allocate {allocated} basis points; exactly {BPS_DENOMINATOR} required",
            )
        )

    return ValidationResult(tuple(errors))
