# src/launchpad/api/structured_logging.py
from __future__ import annotations

import json
import logging
import os
import time
import uuid
from typing import Any, Dict

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

from launchpad.env import env_flag
from launchpad.runtime.runtime_logging import log_event

Json = Dict[str, Any]

_QUIET_PREFIXES = ("/v1/health", "/v1/ready", "/v1/metrics")


class JsonLineFormatter(logging.Formatter):
    """Pass launchpad JSON events through; wrap every other record as one.

    uvicorn and library loggers share the root handler, so the stream stays
    one JSON object per line.
    """

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if msg.startswith("{") and record.name.startswith("launchpad"):
            return msg
        payload: Json = {
            "ts_ms": int(record.created * 1000),
            "event": "log",
            "logger": record.name,
            "level": record.levelname,
            "message": msg,
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def configure_structured_logging() -> None:
    """Route all logging to stdout as JSONL at LAUNCHPAD_LOG_LEVEL (default INFO).

    Idempotent: repeated calls only adjust the level.
    """
    level = getattr(logging, (os.environ.get("LAUNCHPAD_LOG_LEVEL") or "INFO").strip().upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers:
        if isinstance(h.formatter, JsonLineFormatter):
            h.setLevel(level)
            return

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(JsonLineFormatter())
    root.handlers = [handler]


def _route_template(request: Request) -> str:
    # "/v1/tokens/{address}" rather than the concrete address. The app's own
    # route table carries the full path with every router prefix applied.
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return str(getattr(route, "path_format", "") or getattr(route, "path", "") or request.url.path)
    return str(request.url.path or "")


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` event per request, tagged with an x-request-id.

    4xx responses log at WARNING and 5xx at ERROR, so rejected factory calls
    stand out without debug logging. Health, readiness and metrics polls are
    skipped unless LAUNCHPAD_LOG_PROBES=1. LAUNCHPAD_LOG_REQUESTS=0 turns the
    middleware off.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._enabled = env_flag("LAUNCHPAD_LOG_REQUESTS", True)
        self._log_probes = env_flag("LAUNCHPAD_LOG_PROBES", False)
        self._logger = logging.getLogger("launchpad.http")

    async def dispatch(self, request: Request, call_next):
        path = str(request.url.path or "")
        if not self._enabled or (not self._log_probes and path.startswith(_QUIET_PREFIXES)):
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception as e:
            log_event(
                self._logger,
                "http_request",
                level=logging.ERROR,
                request_id=request_id,
                method=request.method,
                route=_route_template(request),
                status=500,
                duration_ms=int((time.monotonic() - started) * 1000),
                error=f"{type(e).__name__}: {e}",
            )
            raise

        status = int(response.status_code)
        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        log_event(
            self._logger,
            "http_request",
            level=level,
            request_id=request_id,
            method=request.method,
            route=_route_template(request),
            status=status,
            duration_ms=int((time.monotonic() - started) * 1000),
            client=str(request.client.host) if request.client else "",
        )
        response.headers.setdefault("x-request-id", request_id)
        return response
