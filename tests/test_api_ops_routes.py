from __future__ import annotations

import json
import logging

import pytest
from fastapi.testclient import TestClient

from conftest import ADMIN, NGO, FakeClock
from quadfund.api.app import create_app
from quadfund.runtime.executor import FundExecutor


@pytest.fixture()
def client(executor: FundExecutor):
    app = create_app(boot_runtime=False)
    app.state.executor = executor
    with TestClient(app) as c:
        yield c


def _op(client: TestClient, op_type: str, caller: str, **payload):
    return client.post("/v1/ops/submit", json={"op_type": op_type, "caller": caller, "payload": payload})


def _setup_proposal(client: TestClient) -> int:
    assert _op(client, "BENEFICIARY_APPROVE", ADMIN, beneficiary=NGO, detail_pointer="ipfs://d").status_code == 200
    assert _op(client, "TREASURY_DEPOSIT", "alice", amount=1_000).status_code == 200
    r = _op(
        client,
        "PROPOSAL_CREATE",
        NGO,
        milestone_descriptions=["boreholes", "filters"],
        milestone_amounts=[500, 500],
    )
    assert r.status_code == 200
    return r.json()["result"]["proposal_id"]


def test_submit_and_read_back(client: TestClient) -> None:
    pid = _setup_proposal(client)

    r = client.get("/v1/voters/alice/quote", params={"proposal_id": pid, "votes": 5})
    assert r.status_code == 200
    assert r.json()["cost"] == 25
    assert r.json()["balance"] == 1_000

    r = _op(client, "VOTE_CAST", "alice", proposal_id=pid, votes=5)
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["result"]["credits_charged"] == 25
    assert "MilestoneUnlocked" in [e["event"] for e in body["events"]]

    pr = client.get(f"/v1/proposals/{pid}").json()["proposal"]
    assert pr["stage"] == "AwaitingVerification(0)"
    assert pr["progress"] == {"total_votes": 5, "released": 1, "milestones": 2}

    votes = client.get(f"/v1/proposals/{pid}/votes/alice").json()
    assert (votes["votes"], votes["credits_spent"]) == (5, 25)

    assert client.get("/v1/credits/alice").json()["balance"] == 975
    assert client.get("/v1/voters/alice/reputation").json()["sessions"] == 1

    treasury = client.get("/v1/treasury").json()["treasury"]
    assert treasury["deposited"] == 1_000
    assert treasury["credit_supply"] == 975

    tl = client.get("/v1/timelocks/1").json()["timelock"]
    assert tl["recipient"] == NGO
    assert tl["amount"] == 500

    ben = client.get(f"/v1/beneficiaries/{NGO}").json()
    assert ben["approved"] is True

    listing = client.get("/v1/proposals", params={"active": "1"}).json()
    assert listing["active"] == [pid]
    assert [p["proposal_id"] for p in listing["items"]] == [pid]


def test_error_statuses(client: TestClient, clock: FakeClock) -> None:
    pid = _setup_proposal(client)

    r = _op(client, "BENEFICIARY_APPROVE", "alice", beneficiary="alice", detail_pointer="")
    assert r.status_code == 403
    err = r.json()["error"]
    assert err["reason"] == "Unauthorized"
    assert err["retriable"] is False

    r = _op(client, "VOTE_CAST", "bob", proposal_id=pid, votes=3)
    assert r.status_code == 402
    assert r.json()["error"]["reason"] == "InsufficientCredits"

    _op(client, "VOTE_CAST", "alice", proposal_id=pid, votes=5)
    r = _op(client, "TREASURY_TIMELOCK_EXECUTE", "anyone", timelock_id=1)
    assert r.status_code == 425
    assert r.json()["error"]["retriable"] is True

    clock.advance_days(2)
    assert _op(client, "TREASURY_TIMELOCK_EXECUTE", "anyone", timelock_id=1).status_code == 200

    r = _op(client, "TREASURY_TIMELOCK_EXECUTE", "anyone", timelock_id=1)
    assert r.status_code == 409

    assert _op(client, "NOPE", ADMIN).status_code == 400
    assert client.get("/v1/proposals/99").status_code == 404
    assert client.get("/v1/proposals/abc").status_code == 400
    assert client.get("/v1/timelocks/42").status_code == 404


def test_envelope_is_strict(client: TestClient) -> None:
    r = client.post("/v1/ops/submit", json={"op_type": "TREASURY_DEPOSIT", "caller": "a", "extra": 1})
    assert r.status_code == 422


def test_events_feed(client: TestClient) -> None:
    _setup_proposal(client)
    _op(client, "TREASURY_DEPOSIT", "bob", amount=10)

    body = client.get("/v1/events", params={"event": "DonationReceived"}).json()
    assert [i["fields"]["donor"] for i in body["items"]] == ["alice", "bob"]

    page = client.get("/v1/events", params={"limit": 2}).json()
    assert len(page["items"]) == 2
    rest = client.get("/v1/events", params={"after": page["next_after"]}).json()
    assert [i["event"] for i in rest["items"]] == ["ProposalCreated", "DonationReceived"]


def test_metrics_endpoint(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    assert client.get("/v1/metrics").status_code == 404

    monkeypatch.setenv("QUADFUND_METRICS_ENABLED", "1")
    _op(client, "TREASURY_DEPOSIT", "alice", amount=5)
    _op(client, "TREASURY_DEPOSIT", "alice", amount=0)

    text = client.get("/v1/metrics").text
    assert "quadfund_ops_applied_total 1" in text
    assert "quadfund_ops_rejected_invalid_total 1" in text
    assert "quadfund_op_seq 1" in text


def _request_lines(caplog: pytest.LogCaptureFixture) -> list:
    out = []
    for rec in caplog.records:
        if rec.name != "quadfund.http":
            continue
        line = json.loads(rec.getMessage())
        if line.get("path") == "/v1/ops/submit":
            out.append(line)
    return out


def test_request_log_carries_op_outcome(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="quadfund.http")

    r = _op(client, "TREASURY_DEPOSIT", "alice", amount=50)
    assert r.status_code == 200
    assert r.headers["x-request-id"]
    _op(client, "TREASURY_DEPOSIT", "bob", amount=0)

    ok, rejected = _request_lines(caplog)
    assert ok["event"] == "http_request"
    assert (ok["op_type"], ok["caller"], ok["op_seq"], ok["status"]) == ("TREASURY_DEPOSIT", "alice", 1, 200)
    assert "reject_reason" not in ok
    assert ok["request_id"] == r.headers["x-request-id"]

    assert (rejected["caller"], rejected["status"]) == ("bob", 400)
    assert (rejected["reject_code"], rejected["reject_reason"]) == ("invalid", "InvalidAmount")
    assert "op_seq" not in rejected
    # Reads carry no op fields.
    client.get("/v1/treasury")
    line = json.loads([rec for rec in caplog.records if rec.name == "quadfund.http"][-1].getMessage())
    assert "op_type" not in line
