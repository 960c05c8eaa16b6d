from __future__ import annotations

import os
import threading
import time
from typing import Dict


_lock = threading.Lock()
_counters: Dict[str, int] = {}
_gauges: Dict[str, int] = {}
_started_ms = int(time.time() * 1000)


def metrics_enabled() -> bool:
    v = (os.environ.get("QUADFUND_METRICS_ENABLED") or "").strip().lower()
    return v in {"1", "true", "yes", "y", "on"}


def _metric_name(name: str) -> str:
    # Prometheus names: [a-zA-Z_:][a-zA-Z0-9_:]*
    out = "".join(ch if (ch.isalnum() or ch in "_:") else "_" for ch in str(name or "").strip())
    return out.lower()


def inc_counter(name: str, value: int = 1) -> None:
    n = _metric_name(name)
    if not n:
        return
    with _lock:
        _counters[n] = int(_counters.get(n, 0)) + int(value)


def set_gauge(name: str, value: int) -> None:
    n = _metric_name(name)
    if not n:
        return
    with _lock:
        _gauges[n] = int(value)


def reset() -> None:
    with _lock:
        _counters.clear()
        _gauges.clear()


def snapshot() -> dict:
    now = int(time.time() * 1000)
    with _lock:
        return {
            "ts_ms": now,
            "started_ms": int(_started_ms),
            "uptime_ms": now - int(_started_ms),
            "counters": dict(_counters),
            "gauges": dict(_gauges),
        }


def format_prometheus(prefix: str = "quadfund_") -> str:
    """Prometheus exposition text: integer counters and gauges only."""
    pre = str(prefix or "").strip() or "quadfund_"
    snap = snapshot()
    lines: list[str] = [f"{pre}uptime_ms {int(snap['uptime_ms'])}"]

    for name, v in sorted(snap["counters"].items()):
        lines.append(f"# TYPE {pre}{name} counter")
        lines.append(f"{pre}{name} {int(v)}")
    for name, v in sorted(snap["gauges"].items()):
        lines.append(f"# TYPE {pre}{name} gauge")
        lines.append(f"{pre}{name} {int(v)}")

    return "\n".join(lines) + "\n"
