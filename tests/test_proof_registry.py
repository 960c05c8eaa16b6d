from __future__ import annotations

import pytest

from conftest import ADMIN, CID_V0, CID_V1, NGO, FundDriver, event_names
from quadfund.runtime.errors import ApplyError
from quadfund.util.ipfs_cid import check_proof_pointer


@pytest.fixture()
def released(fund: FundDriver) -> int:
    fund.approve()
    fund.deposit("alice", 1_000)
    pid = fund.create([1_000, 1_000])
    fund.vote("alice", pid, 10)
    return pid


def _submit(fund: FundDriver, pid: int, idx: int = 0, pointer: str = CID_V0, caller: str = NGO):
    return fund.submit("PROOF_SUBMIT", caller, proposal_id=pid, milestone_index=idx, proof_pointer=pointer)


def _review(fund: FundDriver, sid: int, approved: bool, caller: str = ADMIN):
    return fund.submit("PROOF_REVIEW", caller, submission_id=sid, approved=approved, reason="checked")


def test_submit_and_approve_verifies_milestone(fund: FundDriver, released: int) -> None:
    out = _submit(fund, released, pointer="ipfs://" + CID_V1)
    sid = out["result"]["submission_id"]
    assert sid == 1
    assert event_names(out) == ["ProofSubmitted"]
    assert out["events"][0]["proof_pointer"] == CID_V1

    out = _review(fund, sid, True)
    assert event_names(out) == ["ProofReviewed", "MilestoneVerified"]

    view = fund.view
    assert view.milestone_verified(released, 0)
    assert view.submission(sid)["status"] == "approved"

    with pytest.raises(ApplyError) as ei:
        _submit(fund, released)
    assert ei.value.reason == "AlreadyApproved"

    with pytest.raises(ApplyError) as ei:
        _review(fund, sid, False)
    assert ei.value.reason == "AlreadyProcessed"


def test_rejection_allows_resubmission(fund: FundDriver, released: int) -> None:
    sid = _submit(fund, released)["result"]["submission_id"]

    with pytest.raises(ApplyError) as ei:
        _submit(fund, released)
    assert ei.value.reason == "SubmissionPending"

    out = _review(fund, sid, False)
    assert event_names(out) == ["ProofReviewed"]
    assert not fund.view.milestone_verified(released, 0)

    sid2 = _submit(fund, released)["result"]["submission_id"]
    assert sid2 == sid + 1
    assert [s["status"] for s in fund.view.submissions_for(released, 0)] == ["rejected", "pending"]


def test_only_the_beneficiary_submits(fund: FundDriver, released: int) -> None:
    with pytest.raises(ApplyError) as ei:
        _submit(fund, released, caller="alice")
    assert ei.value.code == "forbidden"
    assert ei.value.reason == "NotOwner"


def test_unknown_proposal_or_milestone(fund: FundDriver, released: int) -> None:
    with pytest.raises(ApplyError) as ei:
        _submit(fund, 99)
    assert ei.value.reason == "NotFound"

    with pytest.raises(ApplyError) as ei:
        _submit(fund, released, idx=2)
    assert ei.value.reason == "NotFound"


@pytest.mark.parametrize("pointer", ["", "https://example.org/proof.pdf", "Qm123", "ipfs://not-a-cid"])
def test_bad_pointer(fund: FundDriver, released: int, pointer: str) -> None:
    with pytest.raises(ApplyError) as ei:
        _submit(fund, released, pointer=pointer)
    assert ei.value.reason == "InvalidProofPointer"


def test_unreleased_milestone_cannot_be_proven(fund: FundDriver, released: int) -> None:
    with pytest.raises(ApplyError) as ei:
        _submit(fund, released, idx=1)
    assert ei.value.reason == "MilestoneNotReleased"


def test_review_requires_oracle_admin(fund: FundDriver, released: int) -> None:
    sid = _submit(fund, released)["result"]["submission_id"]
    with pytest.raises(ApplyError) as ei:
        _review(fund, sid, True, caller=NGO)
    assert ei.value.reason == "Unauthorized"

    with pytest.raises(ApplyError) as ei:
        _review(fund, 404, True)
    assert ei.value.reason == "NotFound"


def test_cid_shapes() -> None:
    assert check_proof_pointer(CID_V0).ok
    assert check_proof_pointer("IPFS://" + CID_V0).cid == CID_V0
    assert check_proof_pointer(CID_V1).ok
    assert check_proof_pointer("Qm" + "0" * 44).reason == "invalid_cid_format"
    assert check_proof_pointer("b" + "a" * 200).reason == "cid_too_long"
