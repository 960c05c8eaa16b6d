from __future__ import annotations

from fastapi import APIRouter, Request

from quadfund.api.errors import ApiError
from quadfund.api.routes_public_parts.common import _int_param, _proposal_id, _view

router = APIRouter()


@router.get("/voters/{voter}/reputation")
def v1_voter_reputation(voter: str, request: Request):
    tier, sessions, unique, days, avg = _view(request).voter_reputation(voter)
    return {
        "ok": True,
        "voter": voter,
        "tier": tier,
        "sessions": sessions,
        "unique_proposals": unique,
        "days_active": days,
        "avg_votes_per_session": avg,
    }


@router.get("/voters/{voter}/quote")
def v1_voter_quote(voter: str, request: Request):
    """Cost preview for ?proposal_id=&votes= at the current state."""
    qp = request.query_params
    pid = _proposal_id(qp.get("proposal_id") or "")
    votes = _int_param(qp.get("votes"), 0)
    if votes <= 0:
        raise ApiError.bad_request("invalid", "InvalidVotes", {"votes": qp.get("votes")})

    view = _view(request)
    if view.proposal(pid) is None:
        raise ApiError.not_found("not_found", "NotFound", {"proposal_id": pid})
    cost = view.quote_vote_cost(voter, pid, votes)
    return {
        "ok": True,
        "voter": voter,
        "proposal_id": pid,
        "votes": votes,
        "cost": cost,
        "balance": view.credit_balance(voter),
    }


@router.get("/credits/{account}")
def v1_credits(account: str, request: Request):
    view = _view(request)
    return {"ok": True, "account": account, "balance": view.credit_balance(account)}
