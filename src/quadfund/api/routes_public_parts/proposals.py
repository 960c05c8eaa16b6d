# src/quadfund/api/routes_public_parts/proposals.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from quadfund.api.errors import ApiError
from quadfund.api.routes_public_parts.common import _int_param, _proposal_id, _view
from quadfund.ledger.state import FundView

router = APIRouter()


def _with_progress(view: FundView, pr: Dict[str, Any]) -> Dict[str, Any]:
    pid = int(pr["proposal_id"])
    total, released, count = view.milestone_progress(pid)
    out = dict(pr)
    out["stage"] = view.proposal_stage(pid)
    out["progress"] = {"total_votes": total, "released": released, "milestones": count}
    return out


@router.get("/proposals")
def v1_proposals(request: Request):
    view = _view(request)
    qp = request.query_params
    limit = max(1, min(200, _int_param(qp.get("limit"), 50)))
    active_only = (qp.get("active") or "").strip().lower() in {"1", "true", "yes"}

    if active_only:
        items = [view.proposal(pid) for pid in view.active_proposal_ids()]
    else:
        items = view.proposals()

    out = [_with_progress(view, pr) for pr in items if pr is not None]
    return {"ok": True, "active": view.active_proposal_ids(), "items": out[:limit]}


@router.get("/proposals/{proposal_id}")
def v1_proposal_get(proposal_id: str, request: Request):
    view = _view(request)
    pr = view.proposal(_proposal_id(proposal_id))
    if pr is None:
        raise ApiError.not_found("not_found", "NotFound", {"proposal_id": proposal_id})
    return {"ok": True, "proposal": _with_progress(view, pr)}


@router.get("/proposals/{proposal_id}/votes/{voter}")
def v1_proposal_votes(proposal_id: str, voter: str, request: Request):
    view = _view(request)
    pid = _proposal_id(proposal_id)
    if view.proposal(pid) is None:
        raise ApiError.not_found("not_found", "NotFound", {"proposal_id": proposal_id})
    votes, spent = view.user_votes(pid, voter)
    return {"ok": True, "proposal_id": pid, "voter": voter, "votes": votes, "credits_spent": spent}
