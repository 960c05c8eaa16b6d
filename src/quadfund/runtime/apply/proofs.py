# src/quadfund/runtime/apply/proofs.py
from __future__ import annotations

"""Proof registry: milestone completion evidence and its review.

A beneficiary submits a content pointer for a released milestone; an oracle
admin approves or rejects it. Approval flips the milestone's `verified` flag,
which is what lets voting move on to the next milestone. At most one
submission per (proposal, milestone) may be pending, and none may follow an
approved one.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from quadfund.runtime import gates
from quadfund.runtime.apply.proposals import ProposalApplyError, get_proposal, parse_proposal_id
from quadfund.runtime.errors import CONFLICT, FORBIDDEN, INVALID, NOT_FOUND
from quadfund.runtime.events import domain_event
from quadfund.runtime.op_types import OpEnvelope
from quadfund.util.ipfs_cid import check_proof_pointer

Json = Dict[str, Any]

MAX_REASON_LEN = 512

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"


@dataclass
class ProofApplyError(Exception):
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


def _ensure_proofs(state: Json) -> Json:
    root = state.get("proofs")
    if not isinstance(root, dict):
        root = {}
        state["proofs"] = root
    root.setdefault("next_id", 1)
    if not isinstance(root.get("by_id"), dict):
        root["by_id"] = {}
    if not isinstance(root.get("by_milestone"), dict):
        root["by_milestone"] = {}
    return root


def milestone_key(proposal_id: int, milestone_index: int) -> str:
    return f"{int(proposal_id)}:{int(milestone_index)}"


def _milestone_index(v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise ProofApplyError(NOT_FOUND, "NotFound", {"milestone_index": v})
    return int(v)


def _apply_proof_submit(state: Json, env: OpEnvelope) -> Json:
    payload = _as_dict(env.payload)
    try:
        pid = parse_proposal_id(payload.get("proposal_id"))
    except ProposalApplyError:
        raise ProofApplyError(NOT_FOUND, "NotFound", {"proposal_id": payload.get("proposal_id")}) from None
    pr = get_proposal(state, pid)

    if _as_str(env.caller) != _as_str(pr.get("beneficiary")):
        raise ProofApplyError(FORBIDDEN, "NotOwner", {"proposal_id": pid, "caller": env.caller})

    idx = _milestone_index(payload.get("milestone_index"))
    milestones = pr.get("milestones") or []
    if idx >= len(milestones):
        raise ProofApplyError(NOT_FOUND, "NotFound", {"proposal_id": pid, "milestone_index": idx})

    chk = check_proof_pointer(_as_str(payload.get("proof_pointer")))
    if not chk.ok:
        raise ProofApplyError(INVALID, "InvalidProofPointer", {"reason": chk.reason})

    root = _ensure_proofs(state)
    key = milestone_key(pid, idx)
    history = root["by_milestone"].get(key)
    if not isinstance(history, list):
        history = []

    for sid in history:
        sub = _as_dict(root["by_id"].get(str(sid)))
        status = sub.get("status")
        if status == STATUS_APPROVED:
            raise ProofApplyError(CONFLICT, "AlreadyApproved", {"submission_id": int(sid)})
        if status == STATUS_PENDING:
            raise ProofApplyError(CONFLICT, "SubmissionPending", {"submission_id": int(sid)})

    if not bool(milestones[idx].get("released", False)):
        raise ProofApplyError(INVALID, "MilestoneNotReleased", {"proposal_id": pid, "milestone_index": idx})

    sid = _as_int(root.get("next_id"), 1)
    root["by_id"][str(sid)] = {
        "submission_id": sid,
        "proposal_id": pid,
        "milestone_index": idx,
        "proof_pointer": chk.cid,
        "submitter": _as_str(env.caller),
        "submitted_ts": int(env.ts),
        "status": STATUS_PENDING,
        "reviewer": None,
        "reviewed_ts": None,
        "reason": "",
    }
    history.append(sid)
    root["by_milestone"][key] = history
    root["next_id"] = sid + 1

    return {
        "applied": "PROOF_SUBMIT",
        "submission_id": sid,
        "events": [
            domain_event(
                "ProofSubmitted",
                submission_id=sid,
                proposal_id=pid,
                milestone_index=idx,
                proof_pointer=chk.cid,
            )
        ],
    }


def _apply_proof_review(state: Json, env: OpEnvelope) -> Json:
    gates.require_role(state, env.caller, gates.ORACLE_ADMIN)

    payload = _as_dict(env.payload)
    sid = _as_int(payload.get("submission_id"), 0)
    approved = payload.get("approved")
    if not isinstance(approved, bool):
        raise ProofApplyError(INVALID, "InvalidDecision", {"approved": approved})
    reason = _as_str(payload.get("reason"))
    if len(reason) > MAX_REASON_LEN:
        raise ProofApplyError(INVALID, "ReasonTooLong", {"len": len(reason), "max": MAX_REASON_LEN})

    root = _ensure_proofs(state)
    sub = root["by_id"].get(str(sid))
    if not isinstance(sub, dict):
        raise ProofApplyError(NOT_FOUND, "NotFound", {"submission_id": sid})
    if sub.get("status") != STATUS_PENDING:
        raise ProofApplyError(CONFLICT, "AlreadyProcessed", {"submission_id": sid, "status": sub.get("status")})

    pid = int(sub["proposal_id"])
    idx = int(sub["milestone_index"])

    sub["status"] = STATUS_APPROVED if approved else STATUS_REJECTED
    sub["reviewer"] = _as_str(env.caller)
    sub["reviewed_ts"] = int(env.ts)
    sub["reason"] = reason

    events = [
        domain_event(
            "ProofReviewed",
            submission_id=sid,
            proposal_id=pid,
            milestone_index=idx,
            approved=approved,
            reason=reason,
        )
    ]
    if approved:
        ms = get_proposal(state, pid)["milestones"][idx]
        ms["verified"] = True
        ms["verified_ts"] = int(env.ts)
        events.append(domain_event("MilestoneVerified", proposal_id=pid, milestone_index=idx))

    return {"applied": "PROOF_REVIEW", "submission_id": sid, "status": sub["status"], "events": events}


PROOF_OP_TYPES: Set[str] = {"PROOF_SUBMIT", "PROOF_REVIEW"}


def apply_proofs(state: Json, env: OpEnvelope) -> Optional[Json]:
    t = _as_str(env.op_type).upper()
    if t not in PROOF_OP_TYPES:
        return None
    if t == "PROOF_SUBMIT":
        return _apply_proof_submit(state, env)
    return _apply_proof_review(state, env)


__all__ = ["ProofApplyError", "PROOF_OP_TYPES", "apply_proofs", "milestone_key"]
