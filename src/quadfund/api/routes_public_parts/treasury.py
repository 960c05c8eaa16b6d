from __future__ import annotations

from fastapi import APIRouter, Request

from quadfund.api.errors import ApiError
from quadfund.api.routes_public_parts.common import _int_param, _view

router = APIRouter()


@router.get("/treasury")
def v1_treasury(request: Request):
    view = _view(request)
    out = view.treasury_summary()
    out["credit_supply"] = view.total_credit_supply
    return {"ok": True, "treasury": out}


@router.get("/timelocks/{timelock_id}")
def v1_timelock(timelock_id: str, request: Request):
    tid = _int_param(timelock_id, 0)
    entry = _view(request).timelock(tid) if tid > 0 else None
    if entry is None:
        raise ApiError.not_found("not_found", "NotFound", {"timelock_id": timelock_id})
    return {"ok": True, "timelock": entry}
