# src/quadfund/runtime/apply/beneficiary.py
from __future__ import annotations

"""Beneficiary registry: the allowlist of accounts eligible to receive funds.

The registry stores an opaque detail pointer per beneficiary plus one
registry-wide pointer to the published detail document. Pointers are never
fetched or parsed here.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from quadfund.runtime import gates
from quadfund.runtime.errors import CONFLICT, INVALID
from quadfund.runtime.events import domain_event
from quadfund.runtime.op_types import OpEnvelope

Json = Dict[str, Any]

MAX_POINTER_LEN = 512


@dataclass
class BeneficiaryApplyError(Exception):
    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:
        return f"{self.code}:{self.reason}"


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) else ""


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _ensure_registry(state: Json) -> Json:
    reg = state.get("beneficiaries")
    if not isinstance(reg, dict):
        reg = {}
        state["beneficiaries"] = reg
    if not isinstance(reg.get("by_account"), dict):
        reg["by_account"] = {}
    reg.setdefault("details_pointer", "")
    return reg


def is_approved(state: Json, beneficiary: str) -> bool:
    reg = state.get("beneficiaries")
    if not isinstance(reg, dict):
        return False
    rec = _as_dict(_as_dict(reg.get("by_account")).get(_as_str(beneficiary)))
    return bool(rec.get("approved", False))


def _pointer(payload: Json, key: str) -> str:
    ptr = _as_str(payload.get(key))
    if len(ptr) > MAX_POINTER_LEN:
        raise BeneficiaryApplyError(INVALID, "PointerTooLong", {"len": len(ptr), "max": MAX_POINTER_LEN})
    return ptr


def _set_status(state: Json, env: OpEnvelope, *, approve: bool) -> Json:
    gates.require_role(state, env.caller, gates.ORACLE_ADMIN)

    payload = _as_dict(env.payload)
    beneficiary = _as_str(payload.get("beneficiary"))
    if not beneficiary:
        raise BeneficiaryApplyError(INVALID, "InvalidBeneficiary", {"op_type": env.op_type})
    pointer = _pointer(payload, "detail_pointer")

    reg = _ensure_registry(state)
    by_account = reg["by_account"]
    rec = _as_dict(by_account.get(beneficiary))

    if bool(rec.get("approved", False)) == approve:
        raise BeneficiaryApplyError(
            CONFLICT,
            "AlreadyInTargetState",
            {"beneficiary": beneficiary, "approved": approve},
        )

    rec["approved"] = approve
    rec["detail_pointer"] = pointer
    rec["updated_ts"] = int(env.ts)
    rec["updated_by"] = env.caller
    if approve:
        rec["approved_ts"] = int(env.ts)
    else:
        rec["revoked_ts"] = int(env.ts)
    by_account[beneficiary] = rec

    name = "BeneficiaryApproved" if approve else "BeneficiaryRevoked"
    return {
        "applied": "BENEFICIARY_APPROVE" if approve else "BENEFICIARY_REVOKE",
        "beneficiary": beneficiary,
        "events": [domain_event(name, beneficiary=beneficiary, detail_pointer=pointer, ts=int(env.ts))],
    }


def _apply_beneficiary_details_set(state: Json, env: OpEnvelope) -> Json:
    gates.require_role(state, env.caller, gates.ORACLE_ADMIN)
    pointer = _pointer(_as_dict(env.payload), "detail_pointer")
    if not pointer:
        raise BeneficiaryApplyError(INVALID, "InvalidDetailPointer", {})

    reg = _ensure_registry(state)
    reg["details_pointer"] = pointer
    reg["details_updated_ts"] = int(env.ts)
    return {
        "applied": "BENEFICIARY_DETAILS_SET",
        "details_pointer": pointer,
        "events": [domain_event("BeneficiaryDetailsUpdated", detail_pointer=pointer, ts=int(env.ts))],
    }


BENEFICIARY_OP_TYPES: Set[str] = {
    "BENEFICIARY_APPROVE",
    "BENEFICIARY_REVOKE",
    "BENEFICIARY_DETAILS_SET",
}


def apply_beneficiary(state: Json, env: OpEnvelope) -> Optional[Json]:
    t = _as_str(env.op_type).upper()
    if t not in BENEFICIARY_OP_TYPES:
        return None

    if t == "BENEFICIARY_APPROVE":
        return _set_status(state, env, approve=True)
    if t == "BENEFICIARY_REVOKE":
        return _set_status(state, env, approve=False)
    return _apply_beneficiary_details_set(state, env)


__all__ = ["BeneficiaryApplyError", "BENEFICIARY_OP_TYPES", "apply_beneficiary", "is_approved"]
