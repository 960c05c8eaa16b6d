# src/quadfund/runtime/genesis.py
from __future__ import annotations

"""Initial fund state.

Genesis is the only place roles are granted without an ADMIN caller: the
configured admin gets ADMIN, ORACLE_ADMIN, BURNER and DISBURSER, and the
voting-engine identity gets VOTING_ENGINE.
"""

from typing import Any, Dict

from quadfund.runtime import gates
from quadfund.runtime.fund_config import FundConfig
from quadfund.runtime.state_invariants import ensure_state

Json = Dict[str, Any]

ADMIN_GENESIS_ROLES = (gates.ADMIN, gates.ORACLE_ADMIN, gates.BURNER, gates.DISBURSER)


def genesis_state(cfg: FundConfig) -> Json:
    st: Json = {"op_seq": 0, "deployment_id": cfg.deployment_id, "params": cfg.to_params()}
    ensure_state(st)
    for role in ADMIN_GENESIS_ROLES:
        gates.grant(st, cfg.admin_account, role)
    gates.grant(st, cfg.voting_engine_account, gates.VOTING_ENGINE)
    return st


__all__ = ["ADMIN_GENESIS_ROLES", "genesis_state"]
