# src/quadfund/runtime/apply/proposals.py
from __future__ import annotations

"""Proposal registry: creation, kill, and milestone records.

Proposals are immutable after creation except for milestone progress fields
(`released`, `verified`, `next_milestone`, `total_votes`) and the validity
flag. Ids are monotonically increasing integers starting at 1; JSON state
keys them by their decimal string.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from quadfund.runtime import gates
from quadfund.runtime.apply.beneficiary import is_approved
from quadfund.runtime.errors import CONFLICT, FORBIDDEN, INVALID, NOT_FOUND
from quadfund.runtime.events import domain_event
from quadfund.runtime.op_types import OpEnvelope

Json = Dict[str, Any]

DEFAULT_PROPOSAL_WINDOW_S = 7 * 86_400
DEFAULT_VOTE_THRESHOLD_SCALE = 100
DEFAULT_MAX_MILESTONES = 10
MAX_DESCRIPTION_LEN = 1_000


@dataclass
class ProposalApplyError(Exception):
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


def _param(state: Json, key: str, default: int) -> int:
    return _as_int(_as_dict(state.get("params")).get(key), default)


def _ensure_proposals(state: Json) -> Json:
    root = state.get("proposals")
    if not isinstance(root, dict):
        root = {}
        state["proposals"] = root
    root.setdefault("next_id", 1)
    if not isinstance(root.get("by_id"), dict):
        root["by_id"] = {}
    if not isinstance(root.get("active"), list):
        root["active"] = []
    return root


def parse_proposal_id(v: Any) -> int:
    if isinstance(v, bool):
        raise ProposalApplyError(INVALID, "InvalidProposalId", {"proposal_id": v})
    try:
        pid = int(v)
    except (TypeError, ValueError):
        raise ProposalApplyError(INVALID, "InvalidProposalId", {"proposal_id": v}) from None
    if pid <= 0:
        raise ProposalApplyError(INVALID, "InvalidProposalId", {"proposal_id": v})
    return pid


def find_proposal(state: Json, proposal_id: int) -> Optional[Json]:
    root = state.get("proposals")
    if not isinstance(root, dict):
        return None
    pr = _as_dict(root.get("by_id")).get(str(int(proposal_id)))
    return pr if isinstance(pr, dict) else None


def get_proposal(state: Json, proposal_id: int) -> Json:
    pr = find_proposal(state, proposal_id)
    if pr is None:
        raise ProposalApplyError(NOT_FOUND, "NotFound", {"proposal_id": int(proposal_id)})
    return pr


def is_expired(pr: Json, now: int) -> bool:
    return int(now) >= _as_int(pr.get("expiry_ts"), 0)


def is_fully_funded(pr: Json) -> bool:
    milestones = pr.get("milestones")
    if not isinstance(milestones, list) or not milestones:
        return False
    return _as_int(pr.get("next_milestone"), 0) >= len(milestones)


def deactivate(state: Json, proposal_id: int) -> None:
    root = _ensure_proposals(state)
    root["active"] = [p for p in root["active"] if _as_int(p, -1) != int(proposal_id)]


def vote_threshold(amount: int, scale: int) -> int:
    # Every milestone needs at least one vote.
    return max(1, int(amount) // max(1, int(scale)))


def _parse_milestones(state: Json, payload: Json) -> List[Json]:
    descs = payload.get("milestone_descriptions")
    amounts = payload.get("milestone_amounts")
    if not isinstance(descs, list) or not isinstance(amounts, list):
        raise ProposalApplyError(INVALID, "InvalidMilestones", {"reason": "arrays_required"})
    if not descs or len(descs) != len(amounts):
        raise ProposalApplyError(
            INVALID,
            "InvalidMilestones",
            {"descriptions": len(descs), "amounts": len(amounts)},
        )

    max_n = _param(state, "max_milestones", DEFAULT_MAX_MILESTONES)
    if len(descs) > max_n:
        raise ProposalApplyError(INVALID, "InvalidMilestones", {"count": len(descs), "max": max_n})

    scale = _param(state, "vote_threshold_scale", DEFAULT_VOTE_THRESHOLD_SCALE)
    out: List[Json] = []
    for i, (d, a) in enumerate(zip(descs, amounts)):
        desc = d.strip() if isinstance(d, str) else ""
        if not desc or len(desc) > MAX_DESCRIPTION_LEN:
            raise ProposalApplyError(INVALID, "InvalidMilestones", {"index": i, "reason": "bad_description"})
        if isinstance(a, bool) or not isinstance(a, int) or a <= 0:
            raise ProposalApplyError(INVALID, "InvalidMilestones", {"index": i, "reason": "bad_amount"})
        out.append(
            {
                "index": i,
                "description": desc,
                "amount": int(a),
                "vote_threshold": vote_threshold(a, scale),
                "released": False,
                "verified": False,
                "released_ts": None,
                "verified_ts": None,
                "timelock_id": None,
            }
        )
    return out


def _apply_proposal_create(state: Json, env: OpEnvelope) -> Json:
    beneficiary = _as_str(env.caller)
    if not is_approved(state, beneficiary):
        raise ProposalApplyError(FORBIDDEN, "UnauthorizedBeneficiary", {"beneficiary": beneficiary})

    milestones = _parse_milestones(state, _as_dict(env.payload))

    root = _ensure_proposals(state)
    pid = _as_int(root.get("next_id"), 1)
    window = _param(state, "proposal_window_s", DEFAULT_PROPOSAL_WINDOW_S)
    now = int(env.ts)

    root["by_id"][str(pid)] = {
        "proposal_id": pid,
        "beneficiary": beneficiary,
        "milestones": milestones,
        "created_ts": now,
        "expiry_ts": now + window,
        "valid": True,
        "killed_ts": None,
        "total_votes": 0,
        "next_milestone": 0,
    }
    root["next_id"] = pid + 1
    root["active"].append(pid)

    return {
        "applied": "PROPOSAL_CREATE",
        "proposal_id": pid,
        "events": [
            domain_event(
                "ProposalCreated",
                proposal_id=pid,
                beneficiary=beneficiary,
                milestone_count=len(milestones),
                total_amount=sum(m["amount"] for m in milestones),
                expiry_ts=now + window,
            )
        ],
    }


def _apply_proposal_kill(state: Json, env: OpEnvelope) -> Json:
    gates.require_role(state, env.caller, gates.ADMIN)

    pid = parse_proposal_id(_as_dict(env.payload).get("proposal_id"))
    pr = get_proposal(state, pid)

    if not bool(pr.get("valid", False)):
        raise ProposalApplyError(CONFLICT, "ProposalNotValid", {"proposal_id": pid})
    if not is_expired(pr, env.ts):
        raise ProposalApplyError(
            INVALID,
            "NotExpired",
            {"proposal_id": pid, "expiry_ts": _as_int(pr.get("expiry_ts")), "now": int(env.ts)},
        )

    pr["valid"] = False
    pr["killed_ts"] = int(env.ts)
    deactivate(state, pid)

    return {
        "applied": "PROPOSAL_KILL",
        "proposal_id": pid,
        "events": [domain_event("ProposalKilled", proposal_id=pid, by=env.caller, ts=int(env.ts))],
    }


PROPOSAL_OP_TYPES: Set[str] = {"PROPOSAL_CREATE", "PROPOSAL_KILL"}


def apply_proposals(state: Json, env: OpEnvelope) -> Optional[Json]:
    t = _as_str(env.op_type).upper()
    if t not in PROPOSAL_OP_TYPES:
        return None
    if t == "PROPOSAL_CREATE":
        return _apply_proposal_create(state, env)
    return _apply_proposal_kill(state, env)


__all__ = [
    "ProposalApplyError",
    "PROPOSAL_OP_TYPES",
    "apply_proposals",
    "parse_proposal_id",
    "find_proposal",
    "get_proposal",
    "is_expired",
    "is_fully_funded",
    "deactivate",
    "vote_threshold",
]
