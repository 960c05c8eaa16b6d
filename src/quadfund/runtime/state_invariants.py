# src/quadfund/runtime/state_invariants.py
from __future__ import annotations

"""State invariants / normalization helpers.

Fund state is a nested JSON-like dict mutated by the apply_* modules. This
module is the single place that validates the state is dict-like and that the
core containers every domain relies on exist: params, roles, credits.

Domain-specific containers (proposals, treasury, proofs, ...) are created by
their own apply module.
"""

from collections.abc import MutableMapping
from typing import Any, Dict

Json = Dict[str, Any]

_CORE_DICTS = ("params", "roles", "credits")


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains core keys.

    Raises:
        TypeError: if st (or a core container) has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for key in _CORE_DICTS:
        cur = st.get(key)
        if cur is None:
            st[key] = {}
        elif not isinstance(cur, dict):
            # Fail closed: do not attempt to coerce arbitrary types.
            raise TypeError(f"state[{key!r}] must be dict, got {type(cur)}")

    seq = st.get("op_seq")
    if seq is None:
        st["op_seq"] = 0
    elif not isinstance(seq, int) or isinstance(seq, bool) or seq < 0:
        raise TypeError(f"state['op_seq'] must be a non-negative int, got {seq!r}")

    return st  # type: ignore[return-value]


def check_treasury_solvency(st: Json) -> None:
    """Outflows (executed timelocks + direct disbursements) never exceed deposits."""
    tre = st.get("treasury")
    if not isinstance(tre, dict):
        return
    deposited = int(tre.get("deposited", 0) or 0)
    released = int(tre.get("released", 0) or 0)
    disbursed = int(tre.get("disbursed", 0) or 0)
    if released + disbursed > deposited:
        raise AssertionError(
            f"treasury_invariant_violation: released={released} disbursed={disbursed} deposited={deposited}"
        )


__all__ = ["ensure_state", "check_treasury_solvency"]
