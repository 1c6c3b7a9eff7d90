# src/launchpad/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from launchpad.api.routes_public_parts.events import router as events_router
from launchpad.api.routes_public_parts.factory import router as factory_router
from launchpad.api.routes_public_parts.health import router as health_router
from launchpad.api.routes_public_parts.metrics import router as metrics_router
from launchpad.api.routes_public_parts.tokens import router as tokens_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(factory_router, prefix="/v1", tags=["factory"])
public_router.include_router(tokens_router, prefix="/v1", tags=["tokens"])
public_router.include_router(events_router, prefix="/v1", tags=["events"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
