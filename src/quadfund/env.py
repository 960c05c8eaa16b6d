# src/quadfund/env.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_LOADED_FROM: Optional[str] = None
_ATTEMPTED = False


def _resolve_dotenv_path(explicit: Optional[str]) -> Optional[Path]:
    raw = explicit or os.getenv("QUADFUND_DOTENV_PATH") or ".env"
    try:
        p = Path(raw).expanduser()
    except Exception:
        return None
    return p if p.is_file() else None


def load_dotenv_if_present(dotenv_path: Optional[str] = None) -> bool:
    """Load QUADFUND_* settings from a .env file once per process.

    Lookup order: the explicit argument, then QUADFUND_DOTENV_PATH, then
    ./.env. Variables already present in the environment win.

    Returns True only when a file was found and loaded by this call.
    """
    global _ATTEMPTED, _LOADED_FROM
    if _ATTEMPTED:
        return False
    _ATTEMPTED = True

    path = _resolve_dotenv_path(dotenv_path)
    if path is None:
        return False

    load_dotenv(dotenv_path=str(path), override=False)
    _LOADED_FROM = str(path)
    return True


def dotenv_source() -> Optional[str]:
    """Path of the .env file that was loaded, if any."""
    return _LOADED_FROM
