# src/quadfund/util/ipfs_cid.py
from __future__ import annotations

"""IPFS CID checks for proof pointers.

Accepted forms:
  - CIDv0 (base58btc): "Qm" followed by 44 base58 characters.
  - CIDv1 (base32 lowercase): "b" followed by the RFC4648 alphabet a-z2-7.
Either may carry an "ipfs://" scheme prefix. This is a shape check only; the
content is never fetched.
"""

import re
from dataclasses import dataclass

IPFS_SCHEME = "ipfs://"

_CIDV0_RE = re.compile(r"^Qm[1-9A-HJ-NP-Za-km-z]{44}$")  # base58btc (no 0,O,I,l)
_CIDV1_BASE32_RE = re.compile(r"^b[a-z2-7]{10,}$")


@dataclass(frozen=True)
class CidCheck:
    ok: bool
    reason: str
    cid: str


def strip_scheme(pointer: str) -> str:
    p = (pointer or "").strip()
    if p.lower().startswith(IPFS_SCHEME):
        p = p[len(IPFS_SCHEME):]
    return p


def check_proof_pointer(pointer: str, *, max_len: int = 128) -> CidCheck:
    c = strip_scheme(pointer)
    if not c:
        return CidCheck(False, "missing_cid", "")
    if len(c) > int(max_len):
        return CidCheck(False, "cid_too_long", c)
    if _CIDV0_RE.match(c) or _CIDV1_BASE32_RE.match(c):
        return CidCheck(True, "ok", c)
    return CidCheck(False, "invalid_cid_format", c)


__all__ = ["CidCheck", "IPFS_SCHEME", "check_proof_pointer", "strip_scheme"]
