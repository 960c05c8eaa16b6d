from __future__ import annotations

from fastapi import APIRouter, Request

from quadfund.api.routes_public_parts.common import _executor, _int_param

router = APIRouter()


@router.get("/events")
def v1_events(request: Request):
    """Committed domain events from the outbox, oldest first.

    Query: after (event_seq cursor), event (name filter), limit (1..1000).
    """
    qp = request.query_params
    after = max(0, _int_param(qp.get("after"), 0))
    limit = max(1, min(1000, _int_param(qp.get("limit"), 100)))
    name = (qp.get("event") or "").strip() or None

    items = _executor(request).events.list(after_seq=after, event=name, limit=limit)
    next_after = items[-1]["event_seq"] if items else after
    return {"ok": True, "items": items, "next_after": next_after}
