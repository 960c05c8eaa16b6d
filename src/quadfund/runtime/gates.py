# src/quadfund/runtime/gates.py
from __future__ import annotations

"""Role-based authorization.

Every privileged operation calls `require_role(state, caller, role)` before it
touches state. Role grants live in state["roles"] as {account: [ROLE, ...]};
there is no implicit admin singleton.
"""

from typing import Any, Dict, List

from quadfund.runtime.errors import FORBIDDEN, ApplyError

Json = Dict[str, Any]

ADMIN = "ADMIN"
ORACLE_ADMIN = "ORACLE_ADMIN"
VOTING_ENGINE = "VOTING_ENGINE"
BURNER = "BURNER"
DISBURSER = "DISBURSER"

ALL_ROLES = frozenset({ADMIN, ORACLE_ADMIN, VOTING_ENGINE, BURNER, DISBURSER})


def _as_str(v: Any) -> str:
    return str(v).strip() if v is not None else ""


def roles_of(state: Json, account: str) -> List[str]:
    roles = state.get("roles")
    if not isinstance(roles, dict):
        return []
    held = roles.get(_as_str(account))
    if not isinstance(held, list):
        return []
    return [str(r) for r in held]


def has_role(state: Json, account: str, role: str) -> bool:
    acct = _as_str(account)
    if not acct:
        return False
    return _as_str(role).upper() in roles_of(state, acct)


def require_role(state: Json, caller: str, role: str) -> None:
    if has_role(state, caller, role):
        return
    raise ApplyError(FORBIDDEN, "Unauthorized", {"caller": _as_str(caller), "required_role": role})


def grant(state: Json, account: str, role: str) -> bool:
    """Add `role` to `account`. Returns False if it was already held."""
    acct = _as_str(account)
    r = _as_str(role).upper()
    roles = state.setdefault("roles", {})
    held = roles.get(acct)
    if not isinstance(held, list):
        held = []
    if r in held:
        return False
    held.append(r)
    roles[acct] = sorted(held)
    return True


def revoke(state: Json, account: str, role: str) -> bool:
    """Remove `role` from `account`. Returns False if it was not held."""
    acct = _as_str(account)
    r = _as_str(role).upper()
    roles = state.setdefault("roles", {})
    held = roles.get(acct)
    if not isinstance(held, list) or r not in held:
        return False
    remaining = [x for x in held if x != r]
    if remaining:
        roles[acct] = remaining
    else:
        roles.pop(acct, None)
    return True


def voting_engine_identity(state: Json) -> str:
    """Account milestone releases queue transfers as. Follows the latest VOTING_ENGINE grant."""
    params = state.get("params")
    if not isinstance(params, dict):
        return ""
    return _as_str(params.get("voting_engine_account"))


def set_voting_engine_identity(state: Json, account: str) -> None:
    params = state.get("params")
    if not isinstance(params, dict):
        params = {}
        state["params"] = params
    params["voting_engine_account"] = _as_str(account)


__all__ = [
    "ADMIN",
    "ORACLE_ADMIN",
    "VOTING_ENGINE",
    "BURNER",
    "DISBURSER",
    "ALL_ROLES",
    "roles_of",
    "has_role",
    "require_role",
    "grant",
    "revoke",
    "voting_engine_identity",
    "set_voting_engine_identity",
]
