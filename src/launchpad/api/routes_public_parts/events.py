from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from launchpad.api.routes_public_parts.common import _executor, _int_param

router = APIRouter()

Json = Dict[str, Any]

_MAX_LIMIT = 500


@router.get("/events")
def list_events(
    request: Request,
    since: Optional[str] = None,
    limit: Optional[str] = None,
    name: Optional[str] = None,
    token: Optional[str] = None,
) -> Json:
    """Event log in commit order. `since` is the last event_id the client has seen."""
    ex = _executor(request)
    since_id = max(0, _int_param(since, 0))
    lim = max(1, min(_MAX_LIMIT, _int_param(limit, 100)))
    events = ex.events(since_id=since_id, limit=lim, name=name or None, token=token or None)
    next_since = events[-1]["event_id"] if events else since_id
    return {"ok": True, "events": events, "next_since": next_since}
