from __future__ import annotations

import pytest

from conftest import ADMIN, NGO, FundDriver, event_names
from quadfund.runtime.errors import ApplyError


def test_approve_and_revoke(fund: FundDriver) -> None:
    out = fund.submit("BENEFICIARY_APPROVE", ADMIN, beneficiary=NGO, detail_pointer="ipfs://ngo-profile")
    assert event_names(out) == ["BeneficiaryApproved"]

    view = fund.view
    assert view.is_approved(NGO)
    assert view.beneficiary(NGO)["detail_pointer"] == "ipfs://ngo-profile"

    with pytest.raises(ApplyError) as ei:
        fund.submit("BENEFICIARY_APPROVE", ADMIN, beneficiary=NGO, detail_pointer="x")
    assert ei.value.code == "conflict"
    assert ei.value.reason == "AlreadyInTargetState"

    out = fund.submit("BENEFICIARY_REVOKE", ADMIN, beneficiary=NGO, detail_pointer="ipfs://revoked")
    assert event_names(out) == ["BeneficiaryRevoked"]
    assert not fund.view.is_approved(NGO)

    with pytest.raises(ApplyError) as ei:
        fund.submit("BENEFICIARY_REVOKE", ADMIN, beneficiary=NGO, detail_pointer="")
    assert ei.value.reason == "AlreadyInTargetState"


def test_revoked_beneficiary_cannot_create(fund: FundDriver) -> None:
    fund.approve()
    fund.submit("BENEFICIARY_REVOKE", ADMIN, beneficiary=NGO, detail_pointer="")
    with pytest.raises(ApplyError) as ei:
        fund.create([100])
    assert ei.value.reason == "UnauthorizedBeneficiary"


def test_registry_requires_oracle_admin(fund: FundDriver) -> None:
    with pytest.raises(ApplyError) as ei:
        fund.submit("BENEFICIARY_APPROVE", NGO, beneficiary=NGO, detail_pointer="")
    assert ei.value.reason == "Unauthorized"
    assert not fund.view.is_approved(NGO)


def test_empty_beneficiary(fund: FundDriver) -> None:
    with pytest.raises(ApplyError) as ei:
        fund.submit("BENEFICIARY_APPROVE", ADMIN, beneficiary="  ", detail_pointer="")
    assert ei.value.reason == "InvalidBeneficiary"


def test_registry_details_pointer(fund: FundDriver) -> None:
    with pytest.raises(ApplyError) as ei:
        fund.submit("BENEFICIARY_DETAILS_SET", ADMIN, detail_pointer="")
    assert ei.value.reason == "InvalidDetailPointer"

    out = fund.submit("BENEFICIARY_DETAILS_SET", ADMIN, detail_pointer="https://example.org/ngos.json")
    assert event_names(out) == ["BeneficiaryDetailsUpdated"]
    assert fund.view.beneficiary_details_pointer == "https://example.org/ngos.json"

    with pytest.raises(ApplyError) as ei:
        fund.submit("BENEFICIARY_DETAILS_SET", ADMIN, detail_pointer="x" * 600)
    assert ei.value.reason == "PointerTooLong"
