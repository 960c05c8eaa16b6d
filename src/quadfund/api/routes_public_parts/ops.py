from __future__ import annotations

from fastapi import APIRouter, Request

from quadfund.api.routes_public_parts.common import _executor
from quadfund.api.schemas import OpSubmitRequest
from quadfund.api.structured_logging import note_committed, note_op

router = APIRouter()


@router.post("/ops/submit")
def v1_ops_submit(body: OpSubmitRequest, request: Request):
    """Apply one operation. Rejections surface through the ApplyError handler."""
    ex = _executor(request)
    note_op(request, body.op_type, body.caller)
    out = ex.submit(body.model_dump())
    note_committed(request, out["op_seq"])
    return out
