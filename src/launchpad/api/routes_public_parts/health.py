"""Liveness and readiness probes.

`/v1/health` answers 200 whenever the process serves HTTP, executor or not,
and carries a short ledger summary when one can be read. `/v1/ready` reports
ok only once an executor is attached whose ledger is bound to a network.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from fastapi import APIRouter, Request

router = APIRouter()

SERVICE = "launchpad"
API_VERSION = "v1"


def _ledger_summary(request: Request) -> Optional[dict[str, Any]]:
    ex = getattr(request.app.state, "executor", None)
    read_state = getattr(ex, "read_state", None)
    if not callable(read_state):
        return None
    try:
        st = read_state()
    except Exception:
        # Probes report; they never fail the request.
        return None
    if not isinstance(st, dict):
        return None

    factory = st.get("factory") if isinstance(st.get("factory"), dict) else {}
    try:
        seq = int(st.get("seq") or 0)
        token_count = int(factory.get("token_count") or 0)
    except (TypeError, ValueError):
        seq, token_count = 0, 0
    return {
        "network": str(st.get("network") or "") or None,
        "seq": seq,
        "token_count": token_count,
    }


def _envelope(ok: bool, **fields: Any) -> dict[str, object]:
    return {"ok": ok, "service": SERVICE, "version": API_VERSION, "ts_ms": int(time.time() * 1000), **fields}


@router.get("/health")
def health(request: Request) -> dict[str, object]:
    summary = _ledger_summary(request) or {"network": None, "seq": None, "token_count": None}
    return _envelope(True, **summary)


@router.get("/ready")
def ready(request: Request) -> dict[str, object]:
    summary = _ledger_summary(request)
    network = summary["network"] if summary else None
    return _envelope(bool(network), network=network, seq=summary["seq"] if summary else None)
