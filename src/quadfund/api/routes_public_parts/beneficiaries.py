from __future__ import annotations

from fastapi import APIRouter, Request

from quadfund.api.routes_public_parts.common import _view

router = APIRouter()


@router.get("/beneficiaries/{account}")
def v1_beneficiary(account: str, request: Request):
    view = _view(request)
    rec = view.beneficiary(account)
    return {
        "ok": True,
        "account": account,
        "approved": bool(rec.get("approved", False)),
        "detail_pointer": str(rec.get("detail_pointer") or ""),
        "registry_details_pointer": view.beneficiary_details_pointer,
    }
