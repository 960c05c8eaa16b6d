from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Error categories. Authorization, validation and economic failures are
# rejected before any state change; "too_early" is retriable, "expired" is not.
FORBIDDEN = "forbidden"
INVALID = "invalid"
NOT_FOUND = "not_found"
CONFLICT = "conflict"
INSUFFICIENT_FUNDS = "insufficient_funds"
TOO_EARLY = "too_early"
EXPIRED = "expired"

# Economic failures that can succeed later without changing the request.
RETRIABLE_REASONS = frozenset({"InsufficientTreasuryFunds"})


@dataclass
class ApplyError(Exception):
    """Canonical error type for domain apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"

    @property
    def retriable(self) -> bool:
        return self.code == TOO_EARLY or self.reason in RETRIABLE_REASONS
