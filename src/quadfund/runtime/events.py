from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Iterable

Json = Dict[str, Any]

_EVENTS_LOGGER = logging.getLogger("quadfund.events")


def _now_ms() -> int:
    return int(time.time() * 1000)


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Emit a single JSONL log line.

    Safe for low-level subsystems: falls back to key=value text if a field
    is not JSON-serializable.
    """
    payload: Json = {"ts_ms": _now_ms(), "event": str(event)}
    payload.update(fields)
    try:
        logger.info(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    except (TypeError, ValueError):
        parts = [f"event={event}"] + [f"{k}={fields.get(k)!r}" for k in sorted(fields.keys())]
        logger.info(" ".join(parts))


def domain_event(event: str, **fields: Any) -> Json:
    """Build a domain event record. Apply functions return these in `events`."""
    out: Json = {"event": str(event)}
    out.update(fields)
    return out


def publish_events(events: Iterable[Json], *, op_seq: int, logger: logging.Logger | None = None) -> int:
    """Publish committed domain events to the events logger.

    Called only after the owning transaction commits.
    """
    lg = logger or _EVENTS_LOGGER
    n = 0
    for ev in events:
        fields = {k: v for k, v in ev.items() if k != "event"}
        log_event(lg, str(ev.get("event") or "unknown"), op_seq=int(op_seq), **fields)
        n += 1
    return n
