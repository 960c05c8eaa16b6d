# src/quadfund/runtime/apply/voting.py
from __future__ import annotations

"""Voting engine: quadratic credit votes and milestone release.

A proposal moves Voting(0) -> AwaitingVerification(0) -> Voting(1) -> ... ->
FullyFunded. The vote tally is cumulative over the proposal's lifetime; each
milestone is released once the tally reaches its threshold *and* the
previous milestone has been verified through the proof registry. Every
release queues a timelocked treasury transfer to the beneficiary, issued
under the voting-engine identity.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from quadfund.ledger.credits import StateCreditLedger
from quadfund.runtime import gates
from quadfund.runtime.apply.proposals import (
    deactivate,
    find_proposal,
    get_proposal,
    is_expired,
    is_fully_funded,
    parse_proposal_id,
)
from quadfund.runtime.apply.treasury import min_delay_s, queue_transfer
from quadfund.runtime.errors import INVALID
from quadfund.runtime.events import domain_event
from quadfund.runtime.op_types import OpEnvelope
from quadfund.runtime.quadratic import ReputationStats, VoteQuote, quote, tier_for

Json = Dict[str, Any]


@dataclass
class VotingApplyError(Exception):
    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:
        return f"{self.code}:{self.reason}"


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) else ""


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _ensure_votes(state: Json, proposal_id: int) -> Json:
    root = state.get("votes")
    if not isinstance(root, dict):
        root = {}
        state["votes"] = root
    per = root.get(str(proposal_id))
    if not isinstance(per, dict):
        per = {}
        root[str(proposal_id)] = per
    return per


def _ensure_reputation(state: Json) -> Json:
    root = state.get("reputation")
    if not isinstance(root, dict):
        root = {}
        state["reputation"] = root
    return root


def voter_entry(state: Json, proposal_id: int, voter: str) -> Json:
    """Read-only VoterLedgerEntry; zeros when the voter never voted here."""
    per = _as_dict(_as_dict(state.get("votes")).get(str(int(proposal_id))))
    rec = _as_dict(per.get(_as_str(voter)))
    return {
        "votes": _as_int(rec.get("votes"), 0),
        "credits_spent": _as_int(rec.get("credits_spent"), 0),
    }


def reputation_record(state: Json, voter: str) -> Json:
    return dict(_as_dict(_as_dict(state.get("reputation")).get(_as_str(voter))))


def _single_vote_floor(state: Json) -> bool:
    v = _as_dict(state.get("params")).get("single_vote_floor", True)
    return bool(v)


def price_vote(state: Json, voter: str, proposal_id: int, votes: int) -> VoteQuote:
    """Cost of `votes` more votes for `voter` on `proposal_id` at the current state."""
    old = voter_entry(state, proposal_id, voter)["votes"]
    stats = ReputationStats.from_record(reputation_record(state, voter))
    return quote(old, votes, stats, single_vote_floor=_single_vote_floor(state))


def proposal_stage(pr: Json, now: int) -> str:
    if not bool(pr.get("valid", False)):
        return "Invalid"
    milestones = pr.get("milestones") or []
    nxt = _as_int(pr.get("next_milestone"), 0)
    if nxt >= len(milestones):
        return "FullyFunded"
    if is_expired(pr, now):
        return "Expired"
    if nxt > 0 and not bool(milestones[nxt - 1].get("verified", False)):
        return f"AwaitingVerification({nxt - 1})"
    return f"Voting({nxt})"


def process_milestones(state: Json, proposal_id: int, now: int) -> List[Json]:
    """Release every milestone the tally and verification status allow.

    Returns the emitted events. Stops at the first milestone that is not yet
    reachable, so at most one unverified released milestone exists.
    """
    pr = get_proposal(state, proposal_id)
    milestones = pr.get("milestones") or []
    tally = _as_int(pr.get("total_votes"), 0)
    engine = gates.voting_engine_identity(state)
    events: List[Json] = []

    while True:
        nxt = _as_int(pr.get("next_milestone"), 0)
        if nxt >= len(milestones):
            break
        ms = milestones[nxt]
        if bool(ms.get("released", False)):
            break
        if nxt > 0 and not bool(milestones[nxt - 1].get("verified", False)):
            break
        if tally < _as_int(ms.get("vote_threshold"), 1):
            break

        ms["released"] = True
        ms["released_ts"] = int(now)
        pr["next_milestone"] = nxt + 1

        eta = int(now) + min_delay_s(state)
        tid, queued = queue_transfer(
            state,
            caller=engine,
            recipient=pr["beneficiary"],
            amount=int(ms["amount"]),
            eta=eta,
            now=int(now),
            proposal_id=int(proposal_id),
            milestone_index=nxt,
        )
        ms["timelock_id"] = tid

        events.append(domain_event("MilestoneUnlocked", proposal_id=int(proposal_id), milestone_index=nxt))
        events.append(
            domain_event(
                "FundsQueued",
                proposal_id=int(proposal_id),
                milestone_index=nxt,
                recipient=pr["beneficiary"],
                amount=int(ms["amount"]),
                timelock_id=tid,
                eta=eta,
            )
        )
        events.extend(queued)

    if is_fully_funded(pr):
        deactivate(state, int(proposal_id))
    return events


def _parse_votes(v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, int) or v <= 0:
        raise VotingApplyError(INVALID, "InvalidVotes", {"votes": v})
    return int(v)


def _apply_vote_cast(state: Json, env: OpEnvelope) -> Json:
    payload = _as_dict(env.payload)
    votes = _parse_votes(payload.get("votes"))
    voter = _as_str(env.caller)
    if not voter:
        raise VotingApplyError(INVALID, "InvalidAccount", {"caller": env.caller})
    now = int(env.ts)

    raw_pid = payload.get("proposal_id")
    pr = None
    if not isinstance(raw_pid, bool) and isinstance(raw_pid, (int, str)) and str(raw_pid).strip().isdigit():
        pr = find_proposal(state, int(raw_pid))
    if pr is None or not bool(pr.get("valid", False)) or is_expired(pr, now):
        raise VotingApplyError(INVALID, "ProposalNotValid", {"proposal_id": raw_pid})
    pid = int(pr["proposal_id"])

    milestones = pr.get("milestones") or []
    nxt = _as_int(pr.get("next_milestone"), 0)
    if nxt >= len(milestones):
        raise VotingApplyError(INVALID, "ProposalFullyFunded", {"proposal_id": pid})
    if nxt > 0 and not bool(milestones[nxt - 1].get("verified", False)):
        raise VotingApplyError(
            INVALID,
            "PriorMilestoneUnverified",
            {"proposal_id": pid, "milestone_index": nxt - 1},
        )

    # Priced on the reputation record as it stood before this vote.
    q = price_vote(state, voter, pid, votes)
    StateCreditLedger(state).burn(voter, q.cost)

    entry = voter_entry(state, pid, voter)
    first_on_proposal = entry["votes"] == 0
    _ensure_votes(state, pid)[voter] = {
        "votes": q.new_total,
        "credits_spent": entry["credits_spent"] + q.cost,
    }
    pr["total_votes"] = _as_int(pr.get("total_votes"), 0) + votes

    rep = _ensure_reputation(state)
    rec = _as_dict(rep.get(voter))
    rec["sessions"] = _as_int(rec.get("sessions"), 0) + 1
    if first_on_proposal:
        rec["unique_proposals"] = _as_int(rec.get("unique_proposals"), 0) + 1
    if "first_vote_ts" not in rec:
        rec["first_vote_ts"] = now
    rec["last_vote_ts"] = now
    rec["total_votes"] = _as_int(rec.get("total_votes"), 0) + votes
    rep[voter] = rec
    new_tier = tier_for(ReputationStats.from_record(rec))

    events: List[Json] = [
        domain_event(
            "VoteCast",
            voter=voter,
            proposal_id=pid,
            votes=votes,
            credits=q.cost,
            tier=q.tier,
        ),
        domain_event(
            "ReputationUpdated",
            voter=voter,
            tier=new_tier,
            sessions=rec["sessions"],
            unique_proposals=_as_int(rec.get("unique_proposals"), 0),
        ),
    ]
    events.extend(process_milestones(state, pid, now))

    return {
        "applied": "VOTE_CAST",
        "proposal_id": pid,
        "votes": q.new_total,
        "credits_charged": q.cost,
        "tier": q.tier,
        "events": events,
    }


def _apply_milestones_reprocess(state: Json, env: OpEnvelope) -> Json:
    gates.require_role(state, env.caller, gates.ADMIN)
    pid = parse_proposal_id(_as_dict(env.payload).get("proposal_id"))
    pr = get_proposal(state, pid)
    if not bool(pr.get("valid", False)):
        raise VotingApplyError(INVALID, "ProposalNotValid", {"proposal_id": pid})

    events = process_milestones(state, pid, int(env.ts))
    return {
        "applied": "MILESTONES_REPROCESS",
        "proposal_id": pid,
        "next_milestone": _as_int(pr.get("next_milestone"), 0),
        "events": events,
    }


VOTING_OP_TYPES: Set[str] = {"VOTE_CAST", "MILESTONES_REPROCESS"}


def apply_voting(state: Json, env: OpEnvelope) -> Optional[Json]:
    t = _as_str(env.op_type).upper()
    if t not in VOTING_OP_TYPES:
        return None
    if t == "VOTE_CAST":
        return _apply_vote_cast(state, env)
    return _apply_milestones_reprocess(state, env)


__all__ = [
    "VotingApplyError",
    "VOTING_OP_TYPES",
    "apply_voting",
    "price_vote",
    "process_milestones",
    "proposal_stage",
    "reputation_record",
    "voter_entry",
]
