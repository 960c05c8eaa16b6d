from __future__ import annotations

import os

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def v1_health(request: Request):
    ex = getattr(request.app.state, "executor", None)
    mode = (os.environ.get("QUADFUND_MODE") or "prod").strip().lower()
    if ex is None:
        return {"ok": True, "ready": False, "mode": mode}
    view = ex.view()
    return {
        "ok": True,
        "ready": True,
        "mode": mode,
        "deployment_id": str(view.state.get("deployment_id") or ""),
        "op_seq": view.op_seq,
        "now": view.now,
    }
