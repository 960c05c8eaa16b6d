# src/quadfund/runtime/apply/roles.py
from __future__ import annotations

from typing import Any, Dict, Optional, Set

from quadfund.runtime import gates
from quadfund.runtime.errors import CONFLICT, INVALID, ApplyError
from quadfund.runtime.events import domain_event
from quadfund.runtime.op_types import OpEnvelope

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) else ""


def _role_args(env: OpEnvelope) -> tuple[str, str]:
    payload = env.payload if isinstance(env.payload, dict) else {}
    account = _as_str(payload.get("account"))
    role = _as_str(payload.get("role")).upper()
    if not account:
        raise ApplyError(INVALID, "InvalidAccount", {"op_type": env.op_type})
    if role not in gates.ALL_ROLES:
        raise ApplyError(INVALID, "UnknownRole", {"role": role, "known": sorted(gates.ALL_ROLES)})
    return account, role


def _apply_role_grant(state: Json, env: OpEnvelope) -> Json:
    gates.require_role(state, env.caller, gates.ADMIN)
    account, role = _role_args(env)
    if not gates.grant(state, account, role):
        raise ApplyError(CONFLICT, "AlreadyInTargetState", {"account": account, "role": role})

    events = [domain_event("RoleGranted", account=account, role=role, by=env.caller)]
    if role == gates.VOTING_ENGINE:
        # The newest engine grant becomes the identity releases are queued under.
        previous = gates.voting_engine_identity(state)
        gates.set_voting_engine_identity(state, account)
        events.append(domain_event("VotingEngineRotated", previous=previous, current=account, by=env.caller))

    return {"applied": "ROLE_GRANT", "account": account, "role": role, "events": events}


def _apply_role_revoke(state: Json, env: OpEnvelope) -> Json:
    gates.require_role(state, env.caller, gates.ADMIN)
    account, role = _role_args(env)
    if role == gates.ADMIN and account == env.caller:
        # An admin stripping its own ADMIN role can lock the deployment out.
        raise ApplyError(INVALID, "CannotRevokeOwnAdmin", {"account": account})
    if role == gates.VOTING_ENGINE and account == gates.voting_engine_identity(state):
        raise ApplyError(CONFLICT, "CannotRevokeActiveEngine", {"account": account})
    if not gates.revoke(state, account, role):
        raise ApplyError(CONFLICT, "AlreadyInTargetState", {"account": account, "role": role})
    return {
        "applied": "ROLE_REVOKE",
        "account": account,
        "role": role,
        "events": [domain_event("RoleRevoked", account=account, role=role, by=env.caller)],
    }


ROLE_OP_TYPES: Set[str] = {"ROLE_GRANT", "ROLE_REVOKE"}


def apply_roles(state: Json, env: OpEnvelope) -> Optional[Json]:
    t = _as_str(env.op_type).upper()
    if t not in ROLE_OP_TYPES:
        return None
    if t == "ROLE_GRANT":
        return _apply_role_grant(state, env)
    return _apply_role_revoke(state, env)


__all__ = ["ROLE_OP_TYPES", "apply_roles"]
