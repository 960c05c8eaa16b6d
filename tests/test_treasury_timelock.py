from __future__ import annotations

import pytest

from conftest import ADMIN, ENGINE, NGO, FundDriver, event_names
from quadfund.runtime.errors import ApplyError
from quadfund.runtime.fund_config import DAY_S


def _queued_timelock(fund: FundDriver) -> int:
    fund.approve()
    fund.deposit("alice", 1_000)
    fund.deposit("whale", 10_000)
    pid = fund.create([1_000])  # threshold 10
    out = fund.vote("whale", pid, 10)
    queued = [ev for ev in out["events"] if ev["event"] == "FundsQueued"][0]
    return int(queued["timelock_id"])


def test_execute_after_eta_transfers_once(fund: FundDriver) -> None:
    tid = _queued_timelock(fund)

    with pytest.raises(ApplyError) as ei:
        fund.submit("TREASURY_TIMELOCK_EXECUTE", "anyone", timelock_id=tid)
    assert ei.value.code == "too_early"
    assert ei.value.reason == "NotYetDue"
    assert ei.value.retriable

    fund.clock.advance_days(2)
    out = fund.submit("TREASURY_TIMELOCK_EXECUTE", "anyone", timelock_id=tid)
    ev = [e for e in out["events"] if e["event"] == "FundsTransferred"][0]
    assert (ev["recipient"], ev["amount"]) == (NGO, 1_000)

    view = fund.view
    assert view.paid_out(NGO) == 1_000
    assert view.treasury_summary()["released"] == 1_000
    assert view.timelock(tid)["executed"] is True

    with pytest.raises(ApplyError) as ei:
        fund.submit("TREASURY_TIMELOCK_EXECUTE", "anyone", timelock_id=tid)
    assert ei.value.reason == "AlreadyExecuted"


def test_execute_past_grace_period_expires(fund: FundDriver) -> None:
    tid = _queued_timelock(fund)
    fund.clock.advance_days(2 + 14)
    fund.clock.advance(1)

    with pytest.raises(ApplyError) as ei:
        fund.submit("TREASURY_TIMELOCK_EXECUTE", "anyone", timelock_id=tid)
    assert ei.value.code == "expired"
    assert not ei.value.retriable


def test_grace_zero_never_expires(fund: FundDriver) -> None:
    tid = _queued_timelock(fund)
    fund.submit("TREASURY_PARAMS_SET", ADMIN, grace_period_s=0)
    fund.clock.advance_days(365)
    out = fund.submit("TREASURY_TIMELOCK_EXECUTE", "anyone", timelock_id=tid)
    assert "FundsTransferred" in event_names(out)


def test_insufficient_treasury_funds_is_retriable(fund: FundDriver) -> None:
    tid = _queued_timelock(fund)
    # Leave 500 in the pool against a 1_000 transfer.
    fund.submit("TREASURY_DISBURSE", ADMIN, recipient="ops", amount=10_500)
    fund.clock.advance_days(2)

    with pytest.raises(ApplyError) as ei:
        fund.submit("TREASURY_TIMELOCK_EXECUTE", "anyone", timelock_id=tid)
    assert ei.value.reason == "InsufficientTreasuryFunds"
    assert ei.value.retriable
    assert fund.view.timelock(tid)["executed"] is False

    fund.deposit("bob", 1_000)
    fund.submit("TREASURY_TIMELOCK_EXECUTE", "anyone", timelock_id=tid)
    assert fund.view.paid_out(NGO) == 1_000
    assert fund.view.treasury_summary()["available"] == 500


def test_cancel_blocks_execution(fund: FundDriver) -> None:
    tid = _queued_timelock(fund)

    with pytest.raises(ApplyError) as ei:
        fund.submit("TREASURY_TIMELOCK_CANCEL", "alice", timelock_id=tid)
    assert ei.value.reason == "Unauthorized"

    fund.submit("TREASURY_TIMELOCK_CANCEL", ADMIN, timelock_id=tid)
    fund.clock.advance_days(3)

    with pytest.raises(ApplyError) as ei:
        fund.submit("TREASURY_TIMELOCK_EXECUTE", "anyone", timelock_id=tid)
    assert ei.value.reason == "Canceled"

    with pytest.raises(ApplyError) as ei:
        fund.submit("TREASURY_TIMELOCK_CANCEL", ADMIN, timelock_id=tid)
    assert ei.value.reason == "Canceled"


def test_unknown_timelock(fund: FundDriver) -> None:
    with pytest.raises(ApplyError) as ei:
        fund.submit("TREASURY_TIMELOCK_EXECUTE", "anyone", timelock_id=42)
    assert ei.value.code == "not_found"


def test_queue_requires_voting_engine_and_min_delay(fund: FundDriver) -> None:
    now = fund.clock.t
    with pytest.raises(ApplyError) as ei:
        fund.submit("TREASURY_TRANSFER_QUEUE", ADMIN, recipient=NGO, amount=10, eta=now + 3 * DAY_S)
    assert ei.value.reason == "Unauthorized"

    with pytest.raises(ApplyError) as ei:
        fund.submit("TREASURY_TRANSFER_QUEUE", ENGINE, recipient=NGO, amount=10, eta=now + DAY_S)
    assert ei.value.reason == "EtaTooSoon"

    with pytest.raises(ApplyError) as ei:
        fund.submit("TREASURY_TRANSFER_QUEUE", ENGINE, recipient=NGO, amount=10, eta=now + 2 * DAY_S - 1)
    assert ei.value.reason == "EtaTooSoon"

    out = fund.submit("TREASURY_TRANSFER_QUEUE", ENGINE, recipient=NGO, amount=10, eta=now + 2 * DAY_S)
    assert out["result"]["timelock_id"] == 1
    assert event_names(out) == ["TimelockQueued"]
