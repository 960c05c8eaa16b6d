from __future__ import annotations

import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List

import pytest

# Ensure local "src/" takes precedence over any globally-installed "quadfund" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from quadfund.runtime import metrics  # noqa: E402
from quadfund.runtime.executor import FundExecutor  # noqa: E402
from quadfund.runtime.fund_config import DAY_S, FundConfig, default_fund_config  # noqa: E402

ADMIN = "admin"
ENGINE = "SYSTEM:voting_engine"
NGO = "ngo-clean-water"

T0 = 1_700_000_000

CID_V0 = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"
CID_V1 = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"


class FakeClock:
    def __init__(self, t: int = T0) -> None:
        self.t = int(t)

    def __call__(self) -> float:
        return float(self.t)

    def advance(self, seconds: int) -> None:
        self.t += int(seconds)

    def advance_days(self, days: float) -> None:
        self.advance(int(days * DAY_S))


class FundDriver:
    """Thin helper over FundExecutor.submit for scenario tests."""

    def __init__(self, ex: FundExecutor, clock: FakeClock) -> None:
        self.ex = ex
        self.clock = clock

    def submit(self, op_type: str, caller: str, **payload: Any) -> Dict[str, Any]:
        return self.ex.submit({"op_type": op_type, "caller": caller, "payload": payload})

    @property
    def view(self):
        return self.ex.view()

    def approve(self, beneficiary: str = NGO) -> None:
        self.submit("BENEFICIARY_APPROVE", ADMIN, beneficiary=beneficiary, detail_pointer="ipfs://details")

    def deposit(self, account: str, amount: int) -> Dict[str, Any]:
        return self.submit("TREASURY_DEPOSIT", account, amount=amount)

    def create(self, amounts: List[int], beneficiary: str = NGO) -> int:
        out = self.submit(
            "PROPOSAL_CREATE",
            beneficiary,
            milestone_descriptions=[f"milestone {i}" for i in range(len(amounts))],
            milestone_amounts=list(amounts),
        )
        return int(out["result"]["proposal_id"])

    def vote(self, voter: str, proposal_id: int, votes: int) -> Dict[str, Any]:
        return self.submit("VOTE_CAST", voter, proposal_id=proposal_id, votes=votes)

    def verify(self, proposal_id: int, index: int, beneficiary: str = NGO) -> int:
        sub = self.submit(
            "PROOF_SUBMIT",
            beneficiary,
            proposal_id=proposal_id,
            milestone_index=index,
            proof_pointer=CID_V0,
        )
        sid = int(sub["result"]["submission_id"])
        self.submit("PROOF_REVIEW", ADMIN, submission_id=sid, approved=True, reason="ok")
        return sid


def event_names(out: Dict[str, Any]) -> List[str]:
    return [str(ev["event"]) for ev in out.get("events", [])]


@pytest.fixture(autouse=True)
def _isolate_env_and_metrics():
    saved = dict(os.environ)
    metrics.reset()
    yield
    os.environ.clear()
    os.environ.update(saved)
    metrics.reset()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def fund_cfg(tmp_path: Path) -> FundConfig:
    return replace(
        default_fund_config(),
        deployment_id="quadfund-test",
        mode="dev",
        db_path=str(tmp_path / "quadfund.db"),
        admin_account=ADMIN,
        voting_engine_account=ENGINE,
    )


@pytest.fixture()
def executor(fund_cfg: FundConfig, clock: FakeClock) -> FundExecutor:
    return FundExecutor(cfg=fund_cfg, clock=clock)


@pytest.fixture()
def fund(executor: FundExecutor, clock: FakeClock) -> FundDriver:
    return FundDriver(executor, clock)
