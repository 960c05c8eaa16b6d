from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from quadfund.runtime.sqlite_db import SqliteDB, SqliteLedgerStore


def _pragma(con: sqlite3.Connection, name: str) -> int | str:
    row = con.execute(f"PRAGMA {name};").fetchone()
    if row is None:
        raise AssertionError(f"missing pragma: {name}")
    return row[0]


def test_sqlite_operational_pragmas_are_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QUADFUND_MODE", "prod")
    monkeypatch.delenv("QUADFUND_SQLITE_SYNCHRONOUS", raising=False)
    monkeypatch.setenv("QUADFUND_SQLITE_BUSY_TIMEOUT_MS", "1234")
    monkeypatch.setenv("QUADFUND_SQLITE_WAL_AUTOCHECKPOINT", "777")
    monkeypatch.setenv("QUADFUND_SQLITE_JOURNAL_SIZE_LIMIT", str(8 * 1024 * 1024))
    monkeypatch.setenv("QUADFUND_SQLITE_CACHE_SIZE_KIB", str(4096))
    monkeypatch.delenv("QUADFUND_SQLITE_MMAP_SIZE", raising=False)

    db = SqliteDB(path=str(tmp_path / "quadfund.db"))
    db.init_schema()

    with db.connection() as con:
        assert str(_pragma(con, "journal_mode")).lower() == "wal"

        # FULL is the prod default.
        assert int(_pragma(con, "synchronous")) == 2

        assert int(_pragma(con, "foreign_keys")) == 1
        assert int(_pragma(con, "temp_store")) == 2
        assert int(_pragma(con, "busy_timeout")) == 1234
        assert int(_pragma(con, "wal_autocheckpoint")) == 777
        assert int(_pragma(con, "journal_size_limit")) == 8 * 1024 * 1024
        assert int(_pragma(con, "cache_size")) == -4096


def test_dev_mode_uses_normal_sync(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QUADFUND_MODE", "dev")
    monkeypatch.delenv("QUADFUND_SQLITE_SYNCHRONOUS", raising=False)

    db = SqliteDB(path=str(tmp_path / "dev.db"))
    with db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 1


def test_schema_version_mismatch_refuses(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "quadfund.db"))
    db.init_schema()
    with db.write_tx() as con:
        con.execute("UPDATE meta SET value='99' WHERE key='schema_version';")

    with pytest.raises(RuntimeError):
        db.init_schema()


def test_store_update_rolls_back_on_error(tmp_path: Path) -> None:
    store = SqliteLedgerStore(db=SqliteDB(path=str(tmp_path / "quadfund.db")))
    store.write({"op_seq": 0, "value": 1})

    def boom(st: dict) -> None:
        st["value"] = 2
        raise ValueError("nope")

    with pytest.raises(ValueError):
        store.update(boom)
    assert store.read() == {"op_seq": 0, "value": 1}


def test_missing_snapshot(tmp_path: Path) -> None:
    store = SqliteLedgerStore(db=SqliteDB(path=str(tmp_path / "quadfund.db")))
    assert not store.exists()
    with pytest.raises(FileNotFoundError):
        store.read()
