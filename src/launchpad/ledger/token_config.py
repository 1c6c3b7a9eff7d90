from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from launchpad.runtime.errors import ArityMismatch

Json = Dict[str, Any]

BPS_DENOMINATOR = 10_000
TOKEN_DECIMALS = 18


@dataclass(frozen=True)
class WalletAllocation:
    address: str
    percentage: int

    def to_json(self) -> Json:
        return {"address": self.address, "percentage": self.percentage}


@dataclass(frozen=True)
class TokenConfig:
    """A proposed token configuration. Percentages and taxes are basis points."""

    name: str
    symbol: str
    total_supply: int
    buy_tax: int
    sell_tax: int
    lp_percentage: int
    marketing_wallet: str
    marketing_percentage: int
    additional_wallets: Tuple[WalletAllocation, ...] = field(default_factory=tuple)

    @staticmethod
    def from_creation_args(
        *,
        name: Any,
        symbol: Any,
        total_supply: Any,
        buy_tax: Any,
        sell_tax: Any,
        lp_percentage: Any,
        marketing_wallet: Any,
        marketing_percentage: Any,
        wallets: Sequence[Any] = (),
        percentages: Sequence[Any] = (),
    ) -> "TokenConfig":
        """Build a config from the creation entry point's parallel sequences.

        Values are carried through as given; range and type checks belong to
        the validator so every violation can be reported at once.
        """
        wl = list(wallets or [])
        pl = list(percentages or [])
        if len(wl) != len(pl):
            raise ArityMismatch(len(wl), len(pl))
        return TokenConfig(
            name=name,
            symbol=symbol,
            total_supply=total_supply,
            buy_tax=buy_tax,
            sell_tax=sell_tax,
            lp_percentage=lp_percentage,
            marketing_wallet=marketing_wallet,
            marketing_percentage=marketing_percentage,
            additional_wallets=tuple(WalletAllocation(a, p) for a, p in zip(wl, pl)),
        )

    @staticmethod
    def from_json(j: Json) -> "TokenConfig":
        wallets: List[Any] = []
        percentages: List[Any] = []
        for w in j.get("additional_wallets") or []:
            if isinstance(w, dict):
                wallets.append(w.get("address"))
                percentages.append(w.get("percentage"))
        return TokenConfig.from_creation_args(
            name=j.get("name"),
            symbol=j.get("symbol"),
            total_supply=j.get("total_supply"),
            buy_tax=j.get("buy_tax"),
            sell_tax=j.get("sell_tax"),
            lp_percentage=j.get("lp_percentage"),
            marketing_wallet=j.get("marketing_wallet"),
            marketing_percentage=j.get("marketing_percentage"),
            wallets=wallets,
            percentages=percentages,
        )

    def to_json(self) -> Json:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "total_supply": self.total_supply,
            "buy_tax": self.buy_tax,
            "sell_tax": self.sell_tax,
            "lp_percentage": self.lp_percentage,
            "marketing_wallet": self.marketing_wallet,
            "marketing_percentage": self.marketing_percentage,
            "additional_wallets": [w.to_json() for w in self.additional_wallets],
        }
