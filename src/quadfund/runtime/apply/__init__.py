# src/quadfund/runtime/apply/__init__.py
"""Domain-specific apply modules.

Each module implements the deterministic state transitions for one group of
op types and exposes a single `apply_<domain>(state, env)` entry point that
returns None for op types it does not claim.
"""

from __future__ import annotations

__all__ = [
    "roles",
    "beneficiary",
    "proposals",
    "proofs",
    "treasury",
    "voting",
]
