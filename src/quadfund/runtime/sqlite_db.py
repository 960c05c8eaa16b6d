# src/quadfund/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

Json = Dict[str, Any]

Journal = Callable[[sqlite3.Connection, Any], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding for persisted snapshots and events.

    Unknown types are not coerced: a non-JSON value leaking into state is a bug
    and must fail the transaction rather than persist something lossy.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


def _backoff_sleep(attempt: int, base_s: float, max_s: float) -> None:
    sleep_s = min(max_s, base_s * (2.0 ** min(attempt, 8)))
    time.sleep(sleep_s * (0.5 + random.random()))


class SqliteDB:
    """SQLite manager for the fund ledger.

    One durable file holds the ledger snapshot, the domain-event outbox and
    the operation journal. Connections are never shared between threads.

    SQLite allows a single writer. Under multi-process load BEGIN IMMEDIATE
    can fail transiently with "database is locked", so write_tx() retries
    with bounded exponential backoff.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """PRAGMA synchronous value: FULL in prod, NORMAL elsewhere.

        Override with QUADFUND_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("QUADFUND_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("QUADFUND_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("QUADFUND_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0
        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # BEGIN/COMMIT are issued explicitly
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        allow_non_wal = (os.environ.get("QUADFUND_SQLITE_ALLOW_NON_WAL") or "").strip() in {"1", "true", "TRUE"}
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        wal_ckpt = max(1, _env_int("QUADFUND_SQLITE_WAL_AUTOCHECKPOINT", 1000))
        con.execute(f"PRAGMA wal_autocheckpoint={wal_ckpt};")

        jsl = max(0, _env_int("QUADFUND_SQLITE_JOURNAL_SIZE_LIMIT", 64 * 1024 * 1024))
        con.execute(f"PRAGMA journal_size_limit={jsl};")

        # Negative cache_size means KiB.
        cache_kib = max(0, _env_int("QUADFUND_SQLITE_CACHE_SIZE_KIB", 64 * 1024))
        con.execute(f"PRAGMA cache_size={-cache_kib};")

        mmap_bytes = max(0, _env_int("QUADFUND_SQLITE_MMAP_SIZE", 0))
        if mmap_bytes:
            con.execute(f"PRAGMA mmap_size={mmap_bytes};")

        busy_ms = max(0, _env_int("QUADFUND_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")

        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  op_seq INTEGER NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS op_journal (
                  op_seq INTEGER PRIMARY KEY,
                  op_type TEXT NOT NULL,
                  caller TEXT NOT NULL,
                  payload_json TEXT NOT NULL,
                  op_ts INTEGER NOT NULL,
                  result_json TEXT NOT NULL,
                  committed_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS domain_events (
                  event_seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  op_seq INTEGER NOT NULL,
                  event TEXT NOT NULL,
                  payload_json TEXT NOT NULL,
                  op_ts INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_events_op ON domain_events(op_seq);")
            con.execute("CREATE INDEX IF NOT EXISTS idx_events_name ON domain_events(event);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except Exception:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg) or ("locked" in msg and "database" in msg)

    def _run_with_lock_retry(self, con: sqlite3.Connection, sql: str, deadline_ts: int) -> None:
        base_s = max(0.001, float(_env_int("QUADFUND_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_s = max(base_s, float(_env_int("QUADFUND_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)
        attempt = 0
        while True:
            try:
                con.execute(sql)
                return
            except sqlite3.OperationalError as e:
                if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                    raise
                _backoff_sleep(attempt, base_s, max_s)
                attempt += 1

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction, retrying writer-lock contention until a deadline.

        Any exception raised inside the block rolls the transaction back and
        propagates unchanged.
        """
        deadline_ms = max(250, _env_int("QUADFUND_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms

        with self.connection() as con:
            self._run_with_lock_retry(con, "BEGIN IMMEDIATE;", deadline_ts)
            try:
                yield con
                self._run_with_lock_retry(con, "COMMIT;", deadline_ts)
            except BaseException:
                try:
                    con.execute("ROLLBACK;")
                except sqlite3.Error:
                    pass
                raise


class SqliteLedgerStore:
    """Ledger snapshot store persisted in SQLite.

    - read(): load the latest snapshot
    - write(st): overwrite the snapshot
    - update(mut): read-modify-write inside one write transaction

    The snapshot is a single row. update() hands `mut` a freshly decoded copy,
    so a raising `mut` leaves both the database and any caller-held copy
    untouched.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    @property
    def db(self) -> SqliteDB:
        return self._db

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM ledger_state WHERE id=1;").fetchone() is not None

    @staticmethod
    def _decode(row: Optional[sqlite3.Row]) -> Json:
        if row is None:
            raise FileNotFoundError("sqlite ledger_state is missing")
        st = json.loads(str(row["state_json"]))
        if not isinstance(st, dict):
            raise ValueError("ledger_state is not a JSON object")
        return st

    def read(self) -> Json:
        with self._db.connection() as con:
            return self._decode(con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone())

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("ledger write expects dict")
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO ledger_state(id, op_seq, state_json, updated_ts_ms)
                VALUES(1, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  op_seq=excluded.op_seq,
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (int(st.get("op_seq", 0)), _canon_json(st), _now_ms()),
            )

    def update(self, mut: Callable[[Json], Any], *, journal: Optional[Journal] = None) -> Any:
        """Apply `mut` to the snapshot atomically and return its result.

        `journal(con, result)` runs inside the same transaction after `mut`,
        so outbox rows commit or roll back together with the state.
        """
        with self._db.write_tx() as con:
            st = self._decode(con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone())

            result = mut(st)

            con.execute(
                "UPDATE ledger_state SET op_seq=?, state_json=?, updated_ts_ms=? WHERE id=1;",
                (int(st.get("op_seq", 0)), _canon_json(st), _now_ms()),
            )
            if journal is not None:
                journal(con, result)
            return result


class DomainEventLog:
    """Read side of the domain_events outbox."""

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db

    @staticmethod
    def append(con: sqlite3.Connection, *, op_seq: int, op_ts: int, events: List[Json]) -> None:
        for ev in events:
            name = str(ev.get("event") or "").strip()
            if not name:
                continue
            fields = {k: v for k, v in ev.items() if k != "event"}
            con.execute(
                "INSERT INTO domain_events(op_seq, event, payload_json, op_ts) VALUES(?, ?, ?, ?);",
                (int(op_seq), name, _canon_json(fields), int(op_ts)),
            )

    def list(self, *, after_seq: int = 0, event: Optional[str] = None, limit: int = 100) -> List[Json]:
        limit = max(1, min(1000, int(limit)))
        sql = "SELECT event_seq, op_seq, event, payload_json, op_ts FROM domain_events WHERE event_seq > ?"
        args: List[Any] = [int(after_seq)]
        if event:
            sql += " AND event = ?"
            args.append(str(event))
        sql += " ORDER BY event_seq ASC LIMIT ?;"
        args.append(limit)

        with self._db.connection() as con:
            rows = con.execute(sql, tuple(args)).fetchall()
        return [
            {
                "event_seq": int(r["event_seq"]),
                "op_seq": int(r["op_seq"]),
                "event": str(r["event"]),
                "op_ts": int(r["op_ts"]),
                "fields": json.loads(str(r["payload_json"])),
            }
            for r in rows
        ]
