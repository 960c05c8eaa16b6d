from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict


@dataclass(frozen=True)
class OpEnvelope:
    """One state-mutating call: who is calling, what, and with which arguments.

    `ts` is stamped by the executor (integer seconds) right before apply so
    every domain function sees one consistent "now" for the whole call.
    """

    op_type: str
    caller: str
    payload: Dict[str, Any]
    ts: int = 0

    @staticmethod
    def from_json(j: Any) -> "OpEnvelope":
        if isinstance(j, OpEnvelope):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        return OpEnvelope(
            op_type=str(j.get("op_type", "")),
            caller=str(j.get("caller", "")),
            payload=dict(j.get("payload", {}) or {}),
            ts=int(j.get("ts", 0) or 0),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "op_type": self.op_type,
            "caller": self.caller,
            "payload": self.payload,
            "ts": self.ts,
        }

    def stamped(self, ts: int) -> "OpEnvelope":
        return replace(self, ts=int(ts))
