# src/launchpad/api/routes_public_parts/common.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from launchpad.api.errors import ApiError

Json = Dict[str, Any]


def _executor(request: Request):
    """The LaunchpadExecutor attached by create_app(); 500 not_ready until then."""
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.not_ready()
    return ex


def _snapshot(request: Request) -> Json:
    # Committed snapshots are never mutated, so handlers may read this freely.
    return dict(_executor(request).read_state())


def _int_param(v: Any, default: int) -> int:
    """Lenient query int: blanks and junk fall back to `default`."""
    try:
        return int(str(v).strip())
    except (TypeError, ValueError):
        return int(default)


def _ok(result: Json) -> Json:
    """Wrap an executor result as a success body; `seq` and events pass through."""
    return {"ok": True, **result}


def _submit_signed(request: Request, call: str, body: Any, **fixed: Any) -> Json:
    """Submit a SignedCall body; `fixed` adds path parameters to the signed payload."""
    ex = _executor(request)
    out = ex.submit_signed(
        {
            "call": call,
            "caller": body.caller,
            "nonce": body.nonce,
            "sig": body.signature,
            "payload": dict(fixed, **body.payload()),
        }
    )
    return _ok(out)
