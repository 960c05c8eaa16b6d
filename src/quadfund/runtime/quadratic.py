# src/quadfund/runtime/quadratic.py
from __future__ import annotations

"""Quadratic vote pricing and reputation tiers.

Pure functions only; the voting apply module feeds them the stored records.

Pricing: holding N votes on one proposal costs N^2 credits in total, paid
incrementally, so a call that takes a voter from `old` to `new` votes costs
new^2 - old^2 before discount.

Tiers reward sustained, diversified participation. The avg-votes-per-session
cap stops a large holder from buying a tier with a few huge sessions.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping

Json = Dict[str, Any]

DAY_S = 86_400
BPS_DENOM = 10_000


@dataclass(frozen=True)
class TierRule:
    tier: int
    discount_bps: int
    min_sessions: int
    min_unique_proposals: int
    min_days_active: int
    max_avg_votes_per_session: int


# Highest tier first.
TIER_RULES = (
    TierRule(tier=2, discount_bps=800, min_sessions=5, min_unique_proposals=4, min_days_active=7, max_avg_votes_per_session=5),
    TierRule(tier=1, discount_bps=400, min_sessions=3, min_unique_proposals=3, min_days_active=3, max_avg_votes_per_session=7),
)


@dataclass(frozen=True)
class ReputationStats:
    sessions: int
    unique_proposals: int
    days_active: int
    avg_votes_per_session: int

    @staticmethod
    def from_record(rec: Mapping[str, Any] | None) -> "ReputationStats":
        r = rec if isinstance(rec, Mapping) else {}
        sessions = int(r.get("sessions", 0) or 0)
        first = int(r.get("first_vote_ts", 0) or 0)
        last = int(r.get("last_vote_ts", 0) or 0)
        total = int(r.get("total_votes", 0) or 0)
        return ReputationStats(
            sessions=sessions,
            unique_proposals=int(r.get("unique_proposals", 0) or 0),
            days_active=max(0, (last - first) // DAY_S) if sessions else 0,
            avg_votes_per_session=(total // sessions) if sessions else 0,
        )


def tier_for(stats: ReputationStats) -> int:
    for rule in TIER_RULES:
        if (
            stats.sessions >= rule.min_sessions
            and stats.unique_proposals >= rule.min_unique_proposals
            and stats.days_active >= rule.min_days_active
            and stats.avg_votes_per_session <= rule.max_avg_votes_per_session
        ):
            return rule.tier
    return 0


def discount_bps_for_tier(tier: int) -> int:
    for rule in TIER_RULES:
        if rule.tier == int(tier):
            return rule.discount_bps
    return 0


def base_cost(old_total: int, additional: int) -> int:
    new_total = int(old_total) + int(additional)
    return new_total * new_total - int(old_total) * int(old_total)


@dataclass(frozen=True)
class VoteQuote:
    old_total: int
    new_total: int
    base_cost: int
    tier: int
    discount_bps: int
    cost: int


def quote(old_total: int, additional: int, stats: ReputationStats, *, single_vote_floor: bool = True) -> VoteQuote:
    """Credits charged for buying `additional` votes on top of `old_total`.

    The discounted cost is rounded down. When exactly one vote is bought and
    the discount rounds the charge to zero, the undiscounted cost is charged
    instead so a vote is never free.
    """
    if int(additional) <= 0:
        raise ValueError("additional votes must be positive")
    base = base_cost(old_total, additional)
    tier = tier_for(stats)
    bps = discount_bps_for_tier(tier)
    cost = base * (BPS_DENOM - bps) // BPS_DENOM
    if single_vote_floor and int(additional) == 1 and cost == 0:
        cost = base
    return VoteQuote(
        old_total=int(old_total),
        new_total=int(old_total) + int(additional),
        base_cost=base,
        tier=tier,
        discount_bps=bps,
        cost=cost,
    )


__all__ = [
    "TierRule",
    "TIER_RULES",
    "ReputationStats",
    "tier_for",
    "discount_bps_for_tier",
    "base_cost",
    "VoteQuote",
    "quote",
]
