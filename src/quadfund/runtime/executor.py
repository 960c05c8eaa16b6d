from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from quadfund.ledger.state import FundView
from quadfund.runtime.domain_dispatch import apply_op
from quadfund.runtime.errors import ApplyError
from quadfund.runtime.events import log_event, publish_events
from quadfund.runtime.fund_config import FundConfig, load_fund_config
from quadfund.runtime.genesis import genesis_state
from quadfund.runtime.metrics import inc_counter, set_gauge
from quadfund.runtime.op_types import OpEnvelope
from quadfund.runtime.sqlite_db import DomainEventLog, SqliteDB, SqliteLedgerStore, _canon_json, _now_ms
from quadfund.runtime.state_invariants import check_treasury_solvency, ensure_state

Json = Dict[str, Any]
Clock = Callable[[], float]

log = logging.getLogger("quadfund.executor")


def _ensure_parent(path: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)


class ExecutorError(RuntimeError):
    pass


class FundExecutor:
    """Sequential executor for fund operations, persisted in SQLite.

    Each submit() is one BEGIN IMMEDIATE transaction over a freshly loaded
    snapshot: apply, journal, outbox, commit. A raised error rolls all of it
    back. Domain events reach the `quadfund.events` logger only after commit.
    """

    def __init__(self, *, cfg: FundConfig, clock: Optional[Clock] = None) -> None:
        self.cfg = cfg
        self.db_path = str(cfg.db_path)
        _ensure_parent(self.db_path)

        self._db = SqliteDB(path=self.db_path)
        self._db.init_schema()
        self._store = SqliteLedgerStore(db=self._db)
        self._events = DomainEventLog(db=self._db)

        self._clock: Clock = clock or time.time
        self._lock = threading.Lock()

        if self._store.exists():
            st = self._store.read()
            have = str(st.get("deployment_id") or "").strip()
            if have and have != cfg.deployment_id:
                raise ExecutorError(
                    f"deployment_id mismatch: db={have!r} config={cfg.deployment_id!r}. Refuse to start."
                )
        else:
            self._store.write(genesis_state(cfg))
            log_event(log, "genesis_written", deployment_id=cfg.deployment_id, db_path=self.db_path)

    @property
    def db(self) -> SqliteDB:
        return self._db

    @property
    def events(self) -> DomainEventLog:
        return self._events

    def now(self) -> int:
        return int(self._clock())

    def read_state(self) -> Json:
        return self._store.read()

    def view(self) -> FundView:
        return FundView.from_state(self.read_state(), now=self.now())

    def submit(self, op: Any) -> Json:
        """Apply one operation atomically.

        Returns {"ok": True, "op_seq", "op_type", "result", "events"}.
        Raises ApplyError if the operation is rejected; nothing is persisted then.
        """
        with self._lock:
            env = OpEnvelope.from_json(op).stamped(self.now())

            def _mut(st: Json) -> Json:
                ensure_state(st)
                st["op_seq"] = int(st["op_seq"]) + 1
                res = apply_op(st, env)
                check_treasury_solvency(st)
                events = list(res.pop("events", []) or [])
                return {"op_seq": int(st["op_seq"]), "result": res, "events": events}

            def _journal(con: Any, out: Json) -> None:
                con.execute(
                    """
                    INSERT INTO op_journal(op_seq, op_type, caller, payload_json, op_ts, result_json, committed_ts_ms)
                    VALUES(?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        int(out["op_seq"]),
                        env.op_type,
                        env.caller,
                        _canon_json(env.payload),
                        int(env.ts),
                        _canon_json(out["result"]),
                        _now_ms(),
                    ),
                )
                DomainEventLog.append(con, op_seq=int(out["op_seq"]), op_ts=int(env.ts), events=out["events"])

            try:
                out = self._store.update(_mut, journal=_journal)
            except ApplyError as e:
                inc_counter("ops_rejected_total")
                inc_counter(f"ops_rejected_{e.code}_total")
                log_event(
                    log,
                    "op_rejected",
                    op_type=env.op_type,
                    caller=env.caller,
                    code=e.code,
                    reason=e.reason,
                    details=e.details,
                )
                raise

        events: List[Json] = out["events"]
        publish_events(events, op_seq=out["op_seq"])
        inc_counter("ops_applied_total")
        set_gauge("op_seq", out["op_seq"])
        return {
            "ok": True,
            "op_seq": out["op_seq"],
            "op_type": env.op_type,
            "result": out["result"],
            "events": events,
        }


def build_executor(cfg: Optional[FundConfig] = None, *, clock: Optional[Clock] = None) -> FundExecutor:
    """Build a FundExecutor from an explicit config or, if omitted, from
    QUADFUND_CONFIG_PATH / QUADFUND_DB_PATH.
    """
    return FundExecutor(cfg=cfg or load_fund_config(), clock=clock)


__all__ = ["ExecutorError", "FundExecutor", "build_executor"]
