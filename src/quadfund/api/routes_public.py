# src/quadfund/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from quadfund.api.routes_public_parts.beneficiaries import router as beneficiaries_router
from quadfund.api.routes_public_parts.events import router as events_router
from quadfund.api.routes_public_parts.health import router as health_router
from quadfund.api.routes_public_parts.metrics import router as metrics_router
from quadfund.api.routes_public_parts.ops import router as ops_router
from quadfund.api.routes_public_parts.proposals import router as proposals_router
from quadfund.api.routes_public_parts.treasury import router as treasury_router
from quadfund.api.routes_public_parts.voters import router as voters_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(ops_router, prefix="/v1", tags=["ops"])
public_router.include_router(proposals_router, prefix="/v1", tags=["proposals"])
public_router.include_router(voters_router, prefix="/v1", tags=["voters"])
public_router.include_router(treasury_router, prefix="/v1", tags=["treasury"])
public_router.include_router(beneficiaries_router, prefix="/v1", tags=["beneficiaries"])
public_router.include_router(events_router, prefix="/v1", tags=["events"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
