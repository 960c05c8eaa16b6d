from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from quadfund.api.structured_logging import note_rejection
from quadfund.runtime import errors as E
from quadfund.runtime.errors import ApplyError

# ApplyError.code -> HTTP status
STATUS_BY_CODE: Dict[str, int] = {
    E.FORBIDDEN: 403,
    E.INVALID: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT: 409,
    E.INSUFFICIENT_FUNDS: 402,
    E.TOO_EARLY: 425,
    E.EXPIRED: 410,
}


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    reason: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, reason: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, reason, details or {})

    @staticmethod
    def not_found(code: str, reason: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, reason, details or {})

    @staticmethod
    def internal(code: str, reason: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, reason, details or {})


def status_for(err: ApplyError) -> int:
    return STATUS_BY_CODE.get(str(err.code), 500)


def _error_body(code: str, reason: str, details: Any, **extra: Any) -> Dict[str, Any]:
    err: Dict[str, Any] = {"code": code, "reason": reason, "details": details if details is not None else {}}
    err.update(extra)
    return {"ok": False, "error": err}


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApplyError)
    async def _apply_error(request: Request, exc: ApplyError) -> JSONResponse:
        note_rejection(request, exc)
        return JSONResponse(
            status_code=status_for(exc),
            content=_error_body(exc.code, exc.reason, exc.details, retriable=exc.retriable),
        )

    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.reason, exc.details))
