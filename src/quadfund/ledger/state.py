from __future__ import annotations

from dataclasses import dataclass, field
import copy
from typing import Any, Dict, List, Optional, Tuple

from quadfund.runtime import gates
from quadfund.runtime.apply.proofs import milestone_key
from quadfund.runtime.apply.voting import price_vote, proposal_stage, reputation_record, voter_entry
from quadfund.runtime.quadratic import ReputationStats, tier_for


Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


@dataclass(frozen=True, slots=True)
class FundView:
    """
    Immutable read-only view over one committed fund snapshot.

    `now` is the read time used for expiry-dependent answers (stage, validity).
    """

    state: Dict[str, Any] = field(default_factory=dict)
    now: int = 0

    @classmethod
    def from_state(cls, state: Dict[str, Any], *, now: int = 0) -> "FundView":
        return cls(state=copy.deepcopy(state), now=int(now))

    @property
    def op_seq(self) -> int:
        return _as_int(self.state.get("op_seq"), 0)

    @property
    def params(self) -> Json:
        return dict(_as_dict(self.state.get("params")))

    # Roles and credits

    def roles_of(self, account: str) -> List[str]:
        return gates.roles_of(self.state, account)

    def credit_balance(self, account: str) -> int:
        balances = _as_dict(_as_dict(self.state.get("credits")).get("balances"))
        return _as_int(balances.get(str(account)), 0)

    @property
    def total_credit_supply(self) -> int:
        return _as_int(_as_dict(self.state.get("credits")).get("total_supply"), 0)

    # Proposals

    def proposal(self, proposal_id: int) -> Optional[Json]:
        by_id = _as_dict(_as_dict(self.state.get("proposals")).get("by_id"))
        pr = by_id.get(str(int(proposal_id)))
        return copy.deepcopy(pr) if isinstance(pr, dict) else None

    def proposals(self) -> List[Json]:
        by_id = _as_dict(_as_dict(self.state.get("proposals")).get("by_id"))
        return [copy.deepcopy(by_id[k]) for k in sorted(by_id, key=int)]

    def active_proposal_ids(self) -> List[int]:
        active = _as_dict(self.state.get("proposals")).get("active")
        return [int(p) for p in active] if isinstance(active, list) else []

    def _milestone(self, proposal_id: int, index: int) -> Json:
        pr = self.proposal(proposal_id)
        if pr is None:
            return {}
        milestones = pr.get("milestones") or []
        if not 0 <= int(index) < len(milestones):
            return {}
        return _as_dict(milestones[int(index)])

    def milestone_released(self, proposal_id: int, index: int) -> bool:
        return bool(self._milestone(proposal_id, index).get("released", False))

    def milestone_verified(self, proposal_id: int, index: int) -> bool:
        return bool(self._milestone(proposal_id, index).get("verified", False))

    def milestone_progress(self, proposal_id: int) -> Tuple[int, int, int]:
        """(total_votes, released_count, milestone_count); zeros for unknown ids."""
        pr = self.proposal(proposal_id)
        if pr is None:
            return (0, 0, 0)
        milestones = pr.get("milestones") or []
        released = sum(1 for m in milestones if bool(_as_dict(m).get("released", False)))
        return (_as_int(pr.get("total_votes"), 0), released, len(milestones))

    def proposal_stage(self, proposal_id: int) -> Optional[str]:
        pr = self.proposal(proposal_id)
        if pr is None:
            return None
        return proposal_stage(pr, self.now)

    # Voting

    def user_votes(self, proposal_id: int, voter: str) -> Tuple[int, int]:
        e = voter_entry(self.state, proposal_id, voter)
        return (e["votes"], e["credits_spent"])

    def voter_reputation(self, voter: str) -> Tuple[int, int, int, int, int]:
        """(tier, sessions, unique_proposals, days_active, avg_votes_per_session)."""
        stats = ReputationStats.from_record(reputation_record(self.state, voter))
        return (
            tier_for(stats),
            stats.sessions,
            stats.unique_proposals,
            stats.days_active,
            stats.avg_votes_per_session,
        )

    def quote_vote_cost(self, voter: str, proposal_id: int, votes: int) -> int:
        """Credits `voter` would be charged right now for `votes` more votes.

        Raises ValueError for non-positive `votes`.
        """
        return price_vote(self.state, voter, proposal_id, votes).cost

    # Treasury

    def treasury_summary(self) -> Json:
        t = _as_dict(self.state.get("treasury"))
        p = self.params
        deposited = _as_int(t.get("deposited"), 0)
        released = _as_int(t.get("released"), 0)
        disbursed = _as_int(t.get("disbursed"), 0)
        return {
            "deposited": deposited,
            "released": released,
            "disbursed": disbursed,
            "available": deposited - released - disbursed,
            "credits_minted": _as_int(t.get("credits_minted"), 0),
            "credits_burned": _as_int(t.get("credits_burned"), 0),
            "mint_rate_micros": _as_int(p.get("mint_rate_micros"), 0),
            "min_delay_s": _as_int(p.get("min_delay_s"), 0),
            "grace_period_s": _as_int(p.get("grace_period_s"), 0),
        }

    def timelock(self, timelock_id: int) -> Optional[Json]:
        entry = _as_dict(_as_dict(self.state.get("treasury")).get("timelocks")).get(str(int(timelock_id)))
        return copy.deepcopy(entry) if isinstance(entry, dict) else None

    def paid_out(self, recipient: str) -> int:
        return _as_int(_as_dict(_as_dict(self.state.get("treasury")).get("paid_out")).get(str(recipient)), 0)

    # Beneficiaries and proofs

    def is_approved(self, beneficiary: str) -> bool:
        return bool(self.beneficiary(beneficiary).get("approved", False))

    def beneficiary(self, account: str) -> Json:
        by_account = _as_dict(_as_dict(self.state.get("beneficiaries")).get("by_account"))
        return dict(_as_dict(by_account.get(str(account).strip())))

    @property
    def beneficiary_details_pointer(self) -> str:
        return str(_as_dict(self.state.get("beneficiaries")).get("details_pointer") or "")

    def submission(self, submission_id: int) -> Optional[Json]:
        sub = _as_dict(_as_dict(self.state.get("proofs")).get("by_id")).get(str(int(submission_id)))
        return copy.deepcopy(sub) if isinstance(sub, dict) else None

    def submissions_for(self, proposal_id: int, index: int) -> List[Json]:
        proofs = _as_dict(self.state.get("proofs"))
        ids = _as_dict(proofs.get("by_milestone")).get(milestone_key(proposal_id, index))
        if not isinstance(ids, list):
            return []
        out = []
        for sid in ids:
            sub = self.submission(int(sid))
            if sub is not None:
                out.append(sub)
        return out


__all__ = ["FundView"]
