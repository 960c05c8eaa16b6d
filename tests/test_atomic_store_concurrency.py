from __future__ import annotations

import multiprocessing as mp
from pathlib import Path

from quadfund.runtime.sqlite_db import SqliteDB, SqliteLedgerStore


def _worker(db_path: str, n: int) -> None:
    store = SqliteLedgerStore(db=SqliteDB(path=db_path))

    def mint(st: dict) -> None:
        credits = st.setdefault("credits", {"balances": {}, "total_supply": 0})
        credits["total_supply"] = int(credits.get("total_supply", 0)) + 1
        st["op_seq"] = int(st.get("op_seq", 0)) + 1

    for _ in range(int(n)):
        store.update(mint)


def test_ledger_store_update_is_cross_process_safe(tmp_path: Path) -> None:
    """Concurrent writers each mint one credit per update; none may be lost."""
    db_path = str(tmp_path / "quadfund_test.db")
    store = SqliteLedgerStore(db=SqliteDB(path=db_path))
    store.write({"op_seq": 0, "credits": {"balances": {}, "total_supply": 0}})

    procs: list[mp.Process] = []
    workers = 4
    per = 250

    for _ in range(workers):
        pr = mp.Process(target=_worker, args=(db_path, per))
        pr.start()
        procs.append(pr)

    for pr in procs:
        pr.join(30)
        assert pr.exitcode == 0

    final = store.read()
    assert int(final["credits"]["total_supply"]) == workers * per
    assert int(final["op_seq"]) == workers * per
