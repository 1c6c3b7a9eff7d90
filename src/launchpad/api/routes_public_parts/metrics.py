from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Query, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from launchpad.api.errors import ApiError
from launchpad.runtime.metrics import format_prometheus, metrics_enabled, snapshot

router = APIRouter()

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@router.get("/metrics")
def metrics(fmt: Literal["prometheus", "json"] = Query(default="prometheus", alias="format")) -> Response:
    """Executor counters and ledger gauges; 404 unless LAUNCHPAD_METRICS_ENABLED=1."""
    if not metrics_enabled():
        err = ApiError(404, "not_found", "metrics are disabled")
        return JSONResponse(status_code=err.status_code, content=err.to_json())
    if fmt == "json":
        return JSONResponse(content={"ok": True, "metrics": snapshot()})
    return PlainTextResponse(content=format_prometheus(), media_type=PROMETHEUS_CONTENT_TYPE)
