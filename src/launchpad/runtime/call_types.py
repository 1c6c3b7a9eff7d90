from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

Json = Dict[str, Any]


@dataclass(frozen=True)
class CallEnvelope:
    """One mutating call against the factory or a token.

    ts_ms is stamped by the executor when the call is accepted and is the only
    clock any applier reads, so replaying the journal is deterministic.

    nonce and sig are set for calls that arrive signed over the network; the
    journal keeps them so replay re-checks the same signatures and nonces.
    """

    call: str
    caller: str
    payload: Dict[str, Any] = field(default_factory=dict)
    ts_ms: int = 0
    nonce: Optional[int] = None
    sig: str = ""

    @staticmethod
    def from_json(j: Any) -> "CallEnvelope":
        if isinstance(j, CallEnvelope):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        nonce = j.get("nonce")
        return CallEnvelope(
            call=str(j.get("call", "") or "").strip().upper(),
            caller=str(j.get("caller", "") or "").strip(),
            payload=dict(j.get("payload", {}) or {}),
            ts_ms=int(j.get("ts_ms", 0) or 0),
            nonce=None if nonce is None else int(nonce),
            sig=str(j.get("sig", "") or ""),
        )

    @property
    def signed(self) -> bool:
        return bool(self.sig)

    def to_json(self) -> Json:
        out: Json = {
            "call": self.call,
            "caller": self.caller,
            "payload": self.payload,
            "ts_ms": self.ts_ms,
        }
        if self.signed:
            out["nonce"] = self.nonce
            out["sig"] = self.sig
        return out

    def with_ts(self, ts_ms: int) -> "CallEnvelope":
        return CallEnvelope(
            call=self.call,
            caller=self.caller,
            payload=dict(self.payload),
            ts_ms=int(ts_ms),
            nonce=self.nonce,
            sig=self.sig,
        )
