from __future__ import annotations

import os
from typing import Optional

from fastapi import FastAPI

from quadfund.api.errors import install_error_handlers
from quadfund.api.routes_public import public_router
from quadfund.api.security import RequestSizeLimitMiddleware
from quadfund.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from quadfund.runtime.executor import build_executor as _build_executor
from quadfund.runtime.fund_config import FundConfig, apply_fund_config_to_env, load_fund_config


def build_executor(cfg: Optional[FundConfig] = None):
    """Build a FundExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `quadfund.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor(cfg or load_fund_config())


def create_app(*, boot_runtime: bool = True, cfg: Optional[FundConfig] = None) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load fund config (unless `cfg` is given), export it to
        env, take the log level from it and attach an executor
      - False: keep lightweight for unit tests / import-time validation
    """
    if boot_runtime:
        cfg = cfg or load_fund_config()
        apply_fund_config_to_env(cfg)

    configure_structured_logging(cfg.log_level if cfg is not None else None)
    mode = os.environ.get("QUADFUND_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="quadfund API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="quadfund API")

    app.state.executor = build_executor(cfg) if boot_runtime else None

    # --- Middleware ---
    # Starlette runs the last-added middleware first, so size limiting sits
    # inside request logging and rejected bodies are still logged.
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    install_error_handlers(app)

    # --- Routers ---
    app.include_router(public_router)

    return app
