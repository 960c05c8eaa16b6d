"""JSONL logging for the fund API.

Each request yields one `http_request` line on the `quadfund.http` logger.
Calls to /v1/ops/submit also carry the op envelope (op_type, caller) and then
either the committed op_seq or the rejection code and reason, so an operator
can follow a single operation from the request log alone.
"""
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from quadfund.runtime.errors import ApplyError
from quadfund.runtime.events import log_event

Json = Dict[str, Any]

HANDLER_NAME = "quadfund-jsonl"

# request.state attributes copied onto the request line when set
OP_LOG_FIELDS = ("op_type", "caller", "op_seq", "reject_code", "reject_reason")


def resolve_log_level(level_name: Optional[str] = None) -> int:
    """FundConfig.log_level when given, else QUADFUND_LOG_LEVEL, else INFO."""
    name = (level_name or os.environ.get("QUADFUND_LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_structured_logging(level_name: Optional[str] = None) -> int:
    """Install the JSONL handler on the root logger and apply the level.

    Handlers owned by the host process are left alone. Calling again only
    moves the level. Returns the numeric level in effect.
    """
    level = resolve_log_level(level_name)
    root = logging.getLogger()

    handler = next((h for h in root.handlers if h.get_name() == HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler()
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)

    handler.setLevel(level)
    root.setLevel(level)
    return level


def note_op(request: Request, op_type: str, caller: str) -> None:
    request.state.op_type = op_type
    request.state.caller = caller


def note_committed(request: Request, op_seq: int) -> None:
    request.state.op_seq = int(op_seq)


def note_rejection(request: Request, err: ApplyError) -> None:
    request.state.reject_code = str(err.code)
    request.state.reject_reason = str(err.reason)


def op_log_fields(request: Request) -> Json:
    out: Json = {}
    for name in OP_LOG_FIELDS:
        v = getattr(request.state, name, None)
        if v is not None:
            out[name] = v
    return out


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One log line per request, tagged with an x-request-id echoed back to the client."""

    def __init__(self, app) -> None:
        super().__init__(app)
        self._logger = logging.getLogger("quadfund.http")

    def _emit(self, request: Request, started: float, status: int, **extra: Any) -> None:
        fields: Json = {
            "request_id": request.state.request_id,
            "method": request.method,
            "path": str(request.url.path or ""),
            "status": int(status),
            "duration_ms": int((time.monotonic() - started) * 1000),
        }
        fields.update(op_log_fields(request))
        fields.update(extra)
        log_event(self._logger, "http_request", **fields)

    async def dispatch(self, request: Request, call_next):
        started = time.monotonic()
        request.state.request_id = request.headers.get("x-request-id") or uuid.uuid4().hex

        try:
            response = await call_next(request)
        except Exception as exc:
            self._emit(request, started, 500, error=repr(exc))
            raise

        response.headers.setdefault("x-request-id", request.state.request_id)
        self._emit(request, started, response.status_code)
        return response
