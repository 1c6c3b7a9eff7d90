"""FastAPI application factory for the launchpad HTTP surface.

`create_app()` loads the launchpad config, attaches one executor to
`app.state.executor` and installs the middleware stack. Run it with
`launchpad-api` or `uvicorn --factory launchpad.api.app:create_app`.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from launchpad.api.errors import ApiError, api_error_from_launchpad
from launchpad.api.routes_public import public_router
from launchpad.api.security import RateLimitMiddleware, RequestSizeLimitMiddleware
from launchpad.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from launchpad.env import env_flag
from launchpad.runtime.chain_config import apply_launchpad_config_to_env, load_launchpad_config
from launchpad.runtime.errors import LaunchpadError
from launchpad.runtime.executor_boot import build_executor as _build_executor
from launchpad.runtime.runtime_logging import log_event

log = logging.getLogger("launchpad.api")


def build_executor():
    """Executor factory used at boot; tests patch this name."""
    return _build_executor()


def _mode() -> str:
    return (os.environ.get("LAUNCHPAD_MODE") or "prod").strip().lower()


def _cors_origins(mode: str) -> List[str]:
    """Origins from LAUNCHPAD_CORS_ORIGINS (comma list). Empty means no CORS.

    A wildcard is accepted in dev and refused in prod, where a browser wallet
    front-end must be named explicitly.
    """
    origins = [o.strip() for o in (os.environ.get("LAUNCHPAD_CORS_ORIGINS") or "").split(",") if o.strip()]
    if "*" not in origins:
        return origins
    if mode == "prod":
        raise RuntimeError("LAUNCHPAD_CORS_ORIGINS may not contain '*' when LAUNCHPAD_MODE=prod")
    return ["*"]


@asynccontextmanager
async def _lifespan(app: FastAPI):
    ex = getattr(app.state, "executor", None)
    log_event(log, "api_started", executor=ex is not None, network=getattr(ex, "network", None))
    try:
        yield
    finally:
        close = getattr(ex, "close", None)
        if callable(close):
            close()
        log_event(log, "api_stopped")


async def _on_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_json())


async def _on_launchpad_error(request: Request, exc: LaunchpadError) -> JSONResponse:
    return await _on_api_error(request, api_error_from_launchpad(exc))


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Build the app.

    With boot_runtime=False no config is loaded and no executor is attached;
    factory and token routes then answer 500 not_ready while the probes still
    respond.
    """
    configure_structured_logging()
    mode = _mode()

    fastapi_kwargs: Dict[str, Any] = {"title": "Launchpad API", "lifespan": _lifespan}
    if mode == "prod":
        fastapi_kwargs.update(docs_url=None, redoc_url=None, openapi_url=None)
    app = FastAPI(**fastapi_kwargs)

    executor = None
    if boot_runtime:
        apply_launchpad_config_to_env(load_launchpad_config())
        executor = build_executor()
    app.state.executor = executor

    app.add_exception_handler(ApiError, _on_api_error)
    app.add_exception_handler(LaunchpadError, _on_launchpad_error)

    # Starlette runs the last-added middleware first, so the request log wraps
    # everything and the size cap sits closest to the routes.
    app.add_middleware(RequestSizeLimitMiddleware)
    if not env_flag("LAUNCHPAD_RL_DISABLE"):
        app.add_middleware(RateLimitMiddleware)
    origins = _cors_origins(mode)
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=origins != ["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "X-Request-Id"],
        )
    app.add_middleware(RequestLogMiddleware)

    app.include_router(public_router)
    return app
