# src/quadfund/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from quadfund.runtime.errors import INVALID, ApplyError
from quadfund.runtime.op_types import OpEnvelope
from quadfund.runtime.state_invariants import ensure_state

# Domain appliers (each returns Optional[Json]; returning None means "not claimed")
from quadfund.runtime.apply.beneficiary import apply_beneficiary
from quadfund.runtime.apply.proofs import apply_proofs
from quadfund.runtime.apply.proposals import apply_proposals
from quadfund.runtime.apply.roles import apply_roles
from quadfund.runtime.apply.treasury import apply_treasury
from quadfund.runtime.apply.voting import apply_voting

Json = Dict[str, Any]
ApplyFn = Callable[[Json, OpEnvelope], Optional[Json]]


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_roles,
    apply_beneficiary,
    apply_proposals,
    apply_voting,
    apply_proofs,
    apply_treasury,
)


def _op_type(env: OpEnvelope) -> str:
    return str(env.op_type or "").strip().upper()


def apply_op(state: Json, env: Any) -> Json:
    """Dispatch an OpEnvelope to the first domain applier that claims it.

    Domain errors are normalized into ApplyError. The caller owns atomicity:
    a raised error means `state` must be discarded.
    """
    ensure_state(state)

    # Tests and tools may pass raw dict envelopes.
    env_norm = OpEnvelope.from_json(env)

    t = _op_type(env_norm)
    if not t:
        raise ApplyError(INVALID, "MissingOpType", {"op_type": t})

    for fn in _APPLIERS:
        try:
            out = fn(state, env_norm)
        except ApplyError:
            raise
        except Exception as e:
            code = getattr(e, "code", None)
            reason = getattr(e, "reason", None)
            details = getattr(e, "details", None)

            if code is not None or reason is not None:
                raise ApplyError(
                    str(code or "domain_error"),
                    str(reason or type(e).__name__),
                    details if details is not None else {"op_type": t, "domain": fn.__name__},
                ) from e

            raise ApplyError(
                "domain_error",
                type(e).__name__,
                {"op_type": t, "domain": fn.__name__, "error": str(e)},
            ) from e

        if out is not None:
            return out

    raise ApplyError(INVALID, "UnknownOpType", {"op_type": t})


__all__ = ["apply_op"]
