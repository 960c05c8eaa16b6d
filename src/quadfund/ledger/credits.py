# src/quadfund/ledger/credits.py
from __future__ import annotations

"""Credit ledger: the fungible balance store credits are minted into and burned from.

The engine only depends on the `CreditLedger` protocol (balance_of / mint /
burn). `StateCreditLedger` keeps balances inside the fund state snapshot so a
mint or burn commits or rolls back together with the operation that caused it.
"""

from typing import Any, Dict, Protocol

from quadfund.runtime.errors import INSUFFICIENT_FUNDS, INVALID, ApplyError

Json = Dict[str, Any]


class CreditLedger(Protocol):
    def balance_of(self, account: str) -> int: ...

    def mint(self, account: str, amount: int) -> int: ...

    def burn(self, account: str, amount: int) -> int: ...


def _ensure_credits(state: Json) -> Json:
    root = state.get("credits")
    if not isinstance(root, dict):
        root = {}
        state["credits"] = root
    if not isinstance(root.get("balances"), dict):
        root["balances"] = {}
    root.setdefault("total_supply", 0)
    return root


def _check_amount(account: str, amount: Any) -> int:
    if not str(account or "").strip():
        raise ApplyError(INVALID, "InvalidAccount", {"account": account})
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ApplyError(INVALID, "InvalidAmount", {"amount": amount})
    return int(amount)


class StateCreditLedger:
    """CreditLedger over state["credits"]; mutations are visible only if the op commits."""

    def __init__(self, state: Json) -> None:
        self._root = _ensure_credits(state)

    @property
    def total_supply(self) -> int:
        return int(self._root.get("total_supply", 0) or 0)

    def balance_of(self, account: str) -> int:
        return int(self._root["balances"].get(str(account), 0) or 0)

    def mint(self, account: str, amount: int) -> int:
        amt = _check_amount(account, amount)
        bal = self.balance_of(account) + amt
        self._root["balances"][str(account)] = bal
        self._root["total_supply"] = self.total_supply + amt
        return bal

    def burn(self, account: str, amount: int) -> int:
        amt = _check_amount(account, amount)
        cur = self.balance_of(account)
        if cur < amt:
            raise ApplyError(
                INSUFFICIENT_FUNDS,
                "InsufficientCredits",
                {"account": str(account), "balance": cur, "required": amt},
            )
        bal = cur - amt
        if bal:
            self._root["balances"][str(account)] = bal
        else:
            self._root["balances"].pop(str(account), None)
        self._root["total_supply"] = self.total_supply - amt
        return bal


__all__ = ["CreditLedger", "StateCreditLedger"]
