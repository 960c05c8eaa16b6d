from __future__ import annotations

from typing import Any

from fastapi import Request

from quadfund.api.errors import ApiError
from quadfund.ledger.state import FundView


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _view(request: Request) -> FundView:
    return _executor(request).view()


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    s = str(v).strip()
    if s == "":
        return int(default)
    try:
        return int(s)
    except ValueError:
        return int(default)


def _proposal_id(raw: str) -> int:
    s = str(raw or "").strip()
    if not s.isdigit() or int(s) <= 0:
        raise ApiError.bad_request("invalid", "InvalidProposalId", {"proposal_id": raw})
    return int(s)
