# src/quadfund/runtime/apply/treasury.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from quadfund.ledger.credits import StateCreditLedger
from quadfund.runtime import gates
from quadfund.runtime.errors import CONFLICT, EXPIRED, INSUFFICIENT_FUNDS, INVALID, NOT_FOUND, TOO_EARLY
from quadfund.runtime.events import domain_event
from quadfund.runtime.fund_config import MINT_RATE_SCALE, parse_mint_rate
from quadfund.runtime.op_types import OpEnvelope

Json = Dict[str, Any]

DEFAULT_MIN_DELAY_S = 2 * 86_400
DEFAULT_GRACE_PERIOD_S = 14 * 86_400


@dataclass
class TreasuryApplyError(Exception):
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


def _params(state: Json) -> Json:
    p = state.get("params")
    if not isinstance(p, dict):
        p = {}
        state["params"] = p
    return p


def _positive_amount(v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, int) or v <= 0:
        raise TreasuryApplyError(INVALID, "InvalidAmount", {"amount": v})
    return int(v)


def _ensure_treasury_root(state: Json) -> Json:
    t = state.get("treasury")
    if not isinstance(t, dict):
        t = {}
        state["treasury"] = t
    for k in ("deposited", "released", "disbursed", "credits_minted", "credits_burned"):
        t.setdefault(k, 0)
    t.setdefault("next_donation_id", 1)
    t.setdefault("next_timelock_id", 1)
    if not isinstance(t.get("donations"), dict):
        t["donations"] = {}
    if not isinstance(t.get("timelocks"), dict):
        t["timelocks"] = {}
    if not isinstance(t.get("paid_out"), dict):
        t["paid_out"] = {}
    return t


def available_funds(state: Json) -> int:
    t = _ensure_treasury_root(state)
    return int(t["deposited"]) - int(t["released"]) - int(t["disbursed"])


def min_delay_s(state: Json) -> int:
    return _as_int(_params(state).get("min_delay_s"), DEFAULT_MIN_DELAY_S)


def _require_funds(state: Json, amount: int) -> None:
    avail = available_funds(state)
    if avail < amount:
        raise TreasuryApplyError(
            INSUFFICIENT_FUNDS,
            "InsufficientTreasuryFunds",
            {"available": avail, "required": int(amount)},
        )


def _pay(t: Json, recipient: str, amount: int) -> None:
    t["paid_out"][recipient] = _as_int(t["paid_out"].get(recipient), 0) + int(amount)


def queue_transfer(
    state: Json,
    *,
    caller: str,
    recipient: str,
    amount: int,
    eta: int,
    now: int,
    proposal_id: Optional[int] = None,
    milestone_index: Optional[int] = None,
) -> Tuple[int, List[Json]]:
    """Schedule a transfer out of the treasury. Returns (timelock_id, events).

    Only the voting-engine identity may queue. Funds are checked at execution,
    not here.
    """
    gates.require_role(state, caller, gates.VOTING_ENGINE)

    to = _as_str(recipient)
    if not to:
        raise TreasuryApplyError(INVALID, "InvalidRecipient", {"recipient": recipient})
    amt = _positive_amount(amount)

    earliest = int(now) + min_delay_s(state)
    if int(eta) < earliest:
        raise TreasuryApplyError(INVALID, "EtaTooSoon", {"eta": int(eta), "earliest": earliest})

    t = _ensure_treasury_root(state)
    tid = _as_int(t.get("next_timelock_id"), 1)
    t["timelocks"][str(tid)] = {
        "timelock_id": tid,
        "recipient": to,
        "amount": amt,
        "eta": int(eta),
        "queued_ts": int(now),
        "queued_by": _as_str(caller),
        "executed": False,
        "canceled": False,
        "executed_ts": None,
        "proposal_id": proposal_id,
        "milestone_index": milestone_index,
    }
    t["next_timelock_id"] = tid + 1

    return tid, [domain_event("TimelockQueued", timelock_id=tid, recipient=to, amount=amt, eta=int(eta))]


def _get_timelock(state: Json, env: OpEnvelope) -> Tuple[int, Json]:
    tid = _as_int(_as_dict(env.payload).get("timelock_id"), 0)
    t = _ensure_treasury_root(state)
    entry = t["timelocks"].get(str(tid))
    if not isinstance(entry, dict):
        raise TreasuryApplyError(NOT_FOUND, "NotFound", {"timelock_id": tid})
    return tid, entry


def _apply_treasury_deposit(state: Json, env: OpEnvelope) -> Json:
    amount = _positive_amount(_as_dict(env.payload).get("amount"))
    rate = _as_int(_params(state).get("mint_rate_micros"), MINT_RATE_SCALE)
    if rate <= 0:
        raise TreasuryApplyError(INVALID, "ZeroMintRate", {})

    credits = amount * rate // MINT_RATE_SCALE
    if credits <= 0:
        raise TreasuryApplyError(INVALID, "ZeroCredits", {"amount": amount, "mint_rate_micros": rate})

    donor = _as_str(env.caller)
    StateCreditLedger(state).mint(donor, credits)

    t = _ensure_treasury_root(state)
    did = _as_int(t.get("next_donation_id"), 1)
    t["donations"][str(did)] = {
        "donation_id": did,
        "donor": donor,
        "amount": amount,
        "credits": credits,
        "ts": int(env.ts),
    }
    t["next_donation_id"] = did + 1
    t["deposited"] = int(t["deposited"]) + amount
    t["credits_minted"] = int(t["credits_minted"]) + credits

    return {
        "applied": "TREASURY_DEPOSIT",
        "donation_id": did,
        "credits": credits,
        "events": [domain_event("DonationReceived", donation_id=did, donor=donor, amount=amount, credits=credits)],
    }


def _apply_treasury_direct_transfer(state: Json, env: OpEnvelope) -> Json:
    # Plain value transfers would bypass minting and the donation record.
    raise TreasuryApplyError(INVALID, "DirectDepositNotAllowed", {"caller": env.caller})


def _apply_treasury_mint_rate_set(state: Json, env: OpEnvelope) -> Json:
    gates.require_role(state, env.caller, gates.ADMIN)
    raw = _as_dict(env.payload).get("rate")
    try:
        rate = parse_mint_rate(raw)
    except ValueError:
        raise TreasuryApplyError(INVALID, "InvalidMintRate", {"rate": raw}) from None

    p = _params(state)
    old = _as_int(p.get("mint_rate_micros"), MINT_RATE_SCALE)
    p["mint_rate_micros"] = rate
    return {
        "applied": "TREASURY_MINT_RATE_SET",
        "mint_rate_micros": rate,
        "events": [domain_event("MintRateUpdated", old_rate_micros=old, new_rate_micros=rate)],
    }


def _apply_treasury_params_set(state: Json, env: OpEnvelope) -> Json:
    gates.require_role(state, env.caller, gates.ADMIN)
    payload = _as_dict(env.payload)

    updates: Json = {}
    for key in ("min_delay_s", "grace_period_s"):
        if key not in payload:
            continue
        v = payload[key]
        if isinstance(v, bool) or not isinstance(v, int) or v < 0:
            raise TreasuryApplyError(INVALID, "InvalidParam", {"param": key, "value": v})
        updates[key] = int(v)
    if not updates:
        raise TreasuryApplyError(INVALID, "InvalidParam", {"reason": "no_params"})

    _params(state).update(updates)
    return {
        "applied": "TREASURY_PARAMS_SET",
        "params": updates,
        "events": [domain_event("TreasuryParamsUpdated", **updates)],
    }


def _apply_treasury_transfer_queue(state: Json, env: OpEnvelope) -> Json:
    payload = _as_dict(env.payload)
    eta = payload.get("eta")
    if isinstance(eta, bool) or not isinstance(eta, int):
        raise TreasuryApplyError(INVALID, "InvalidEta", {"eta": eta})
    tid, events = queue_transfer(
        state,
        caller=env.caller,
        recipient=_as_str(payload.get("recipient")),
        amount=payload.get("amount"),
        eta=eta,
        now=int(env.ts),
    )
    return {"applied": "TREASURY_TRANSFER_QUEUE", "timelock_id": tid, "events": events}


def _apply_treasury_timelock_execute(state: Json, env: OpEnvelope) -> Json:
    tid, entry = _get_timelock(state, env)
    now = int(env.ts)

    if bool(entry.get("canceled")):
        raise TreasuryApplyError(CONFLICT, "Canceled", {"timelock_id": tid})
    if bool(entry.get("executed")):
        raise TreasuryApplyError(CONFLICT, "AlreadyExecuted", {"timelock_id": tid})

    eta = _as_int(entry.get("eta"), 0)
    if now < eta:
        raise TreasuryApplyError(TOO_EARLY, "NotYetDue", {"timelock_id": tid, "eta": eta, "now": now})

    grace = _as_int(_params(state).get("grace_period_s"), DEFAULT_GRACE_PERIOD_S)
    if grace > 0 and now > eta + grace:
        raise TreasuryApplyError(EXPIRED, "Expired", {"timelock_id": tid, "eta": eta, "grace_period_s": grace})

    amount = _as_int(entry.get("amount"), 0)
    _require_funds(state, amount)

    t = _ensure_treasury_root(state)
    t["released"] = int(t["released"]) + amount
    _pay(t, entry["recipient"], amount)
    entry["executed"] = True
    entry["executed_ts"] = now

    return {
        "applied": "TREASURY_TIMELOCK_EXECUTE",
        "timelock_id": tid,
        "events": [
            domain_event("FundsTransferred", timelock_id=tid, recipient=entry["recipient"], amount=amount)
        ],
    }


def _apply_treasury_timelock_cancel(state: Json, env: OpEnvelope) -> Json:
    gates.require_role(state, env.caller, gates.ADMIN)
    tid, entry = _get_timelock(state, env)

    if bool(entry.get("executed")):
        raise TreasuryApplyError(CONFLICT, "AlreadyExecuted", {"timelock_id": tid})
    if bool(entry.get("canceled")):
        raise TreasuryApplyError(CONFLICT, "Canceled", {"timelock_id": tid})

    entry["canceled"] = True
    entry["canceled_ts"] = int(env.ts)
    entry["canceled_by"] = _as_str(env.caller)
    return {
        "applied": "TREASURY_TIMELOCK_CANCEL",
        "timelock_id": tid,
        "events": [domain_event("TimelockCanceled", timelock_id=tid, by=env.caller)],
    }


def _apply_treasury_burn(state: Json, env: OpEnvelope) -> Json:
    gates.require_role(state, env.caller, gates.BURNER)
    payload = _as_dict(env.payload)
    voter = _as_str(payload.get("voter"))
    if not voter:
        raise TreasuryApplyError(INVALID, "InvalidAccount", {"voter": payload.get("voter")})
    amount = _positive_amount(payload.get("amount"))

    StateCreditLedger(state).burn(voter, amount)
    t = _ensure_treasury_root(state)
    t["credits_burned"] = int(t["credits_burned"]) + amount

    return {
        "applied": "TREASURY_BURN",
        "events": [domain_event("CreditsBurned", voter=voter, amount=amount, by=env.caller)],
    }


def _apply_treasury_disburse(state: Json, env: OpEnvelope) -> Json:
    gates.require_role(state, env.caller, gates.DISBURSER)
    payload = _as_dict(env.payload)
    recipient = _as_str(payload.get("recipient"))
    if not recipient:
        raise TreasuryApplyError(INVALID, "InvalidRecipient", {"recipient": payload.get("recipient")})
    amount = _positive_amount(payload.get("amount"))
    _require_funds(state, amount)

    t = _ensure_treasury_root(state)
    t["disbursed"] = int(t["disbursed"]) + amount
    _pay(t, recipient, amount)

    return {
        "applied": "TREASURY_DISBURSE",
        "events": [domain_event("FundsDisbursed", recipient=recipient, amount=amount, by=env.caller)],
    }


TREASURY_OP_TYPES: Set[str] = {
    "TREASURY_DEPOSIT",
    "TREASURY_DIRECT_TRANSFER",
    "TREASURY_MINT_RATE_SET",
    "TREASURY_PARAMS_SET",
    "TREASURY_TRANSFER_QUEUE",
    "TREASURY_TIMELOCK_EXECUTE",
    "TREASURY_TIMELOCK_CANCEL",
    "TREASURY_BURN",
    "TREASURY_DISBURSE",
}


def apply_treasury(state: Json, env: OpEnvelope) -> Optional[Json]:
    """Apply Treasury ops. Returns None if not handled."""
    t = _as_str(env.op_type).upper()
    if t not in TREASURY_OP_TYPES:
        return None

    if t == "TREASURY_DEPOSIT":
        return _apply_treasury_deposit(state, env)
    if t == "TREASURY_DIRECT_TRANSFER":
        return _apply_treasury_direct_transfer(state, env)
    if t == "TREASURY_MINT_RATE_SET":
        return _apply_treasury_mint_rate_set(state, env)
    if t == "TREASURY_PARAMS_SET":
        return _apply_treasury_params_set(state, env)
    if t == "TREASURY_TRANSFER_QUEUE":
        return _apply_treasury_transfer_queue(state, env)
    if t == "TREASURY_TIMELOCK_EXECUTE":
        return _apply_treasury_timelock_execute(state, env)
    if t == "TREASURY_TIMELOCK_CANCEL":
        return _apply_treasury_timelock_cancel(state, env)
    if t == "TREASURY_BURN":
        return _apply_treasury_burn(state, env)
    if t == "TREASURY_DISBURSE":
        return _apply_treasury_disburse(state, env)

    return None


__all__ = [
    "TreasuryApplyError",
    "TREASURY_OP_TYPES",
    "apply_treasury",
    "available_funds",
    "min_delay_s",
    "queue_transfer",
]
