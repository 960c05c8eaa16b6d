# src/quadfund/runtime/fund_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

Json = Dict[str, Any]

# Mint rates are fixed-point: 1_000_000 micros == 1 credit per base unit.
MINT_RATE_SCALE = 1_000_000

DAY_S = 86_400


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def parse_mint_rate(v: Any) -> int:
    """Convert a human rate ("1.0", 0.5, 2) into fixed-point micros.

    Integers in a JSON config are credits per base unit, not micros.
    """
    if isinstance(v, bool):
        raise ValueError(f"mint rate must be numeric; got: {v!r}")
    try:
        d = Decimal(str(v).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"mint rate must be numeric; got: {v!r}") from None
    if d < 0:
        raise ValueError(f"mint rate must be >= 0; got: {v!r}")
    return int(d * MINT_RATE_SCALE)


@dataclass(frozen=True)
class FundConfig:
    deployment_id: str
    mode: str  # "dev" | "testnet" | "prod"

    db_path: str

    # Genesis role holders.
    admin_account: str
    voting_engine_account: str

    # Treasury.
    mint_rate_micros: int
    min_delay_s: int
    grace_period_s: int  # 0 disables timelock expiry

    # Proposals and voting.
    proposal_window_s: int
    vote_threshold_scale: int
    max_milestones: int
    single_vote_floor: bool

    api_host: str
    api_port: int

    log_level: str

    def to_params(self) -> Json:
        """The subset of config that lives in ledger params (mutable by admin ops)."""
        return {
            "deployment_id": self.deployment_id,
            "mint_rate_micros": int(self.mint_rate_micros),
            "min_delay_s": int(self.min_delay_s),
            "grace_period_s": int(self.grace_period_s),
            "proposal_window_s": int(self.proposal_window_s),
            "vote_threshold_scale": int(self.vote_threshold_scale),
            "max_milestones": int(self.max_milestones),
            "single_vote_floor": bool(self.single_vote_floor),
            "voting_engine_account": self.voting_engine_account,
        }


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_fund_config(cfg: FundConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.deployment_id, str) or not cfg.deployment_id.strip():
        raise ValueError("deployment_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    for name, acct in (("admin_account", cfg.admin_account), ("voting_engine_account", cfg.voting_engine_account)):
        if not isinstance(acct, str) or not acct.strip():
            raise ValueError(f"{name} must be a non-empty string")
    if cfg.admin_account.strip() == cfg.voting_engine_account.strip():
        # Emergency burn/disburse must stay with a role distinct from the voting engine.
        raise ValueError("admin_account and voting_engine_account must differ")

    if int(cfg.mint_rate_micros) < 0:
        raise ValueError(f"mint_rate_micros must be >= 0; got: {cfg.mint_rate_micros}")
    if int(cfg.min_delay_s) < 0:
        raise ValueError(f"min_delay_s must be >= 0; got: {cfg.min_delay_s}")
    if int(cfg.grace_period_s) < 0:
        raise ValueError(f"grace_period_s must be >= 0; got: {cfg.grace_period_s}")
    if int(cfg.proposal_window_s) <= 0:
        raise ValueError(f"proposal_window_s must be > 0; got: {cfg.proposal_window_s}")
    if int(cfg.vote_threshold_scale) <= 0:
        raise ValueError(f"vote_threshold_scale must be > 0; got: {cfg.vote_threshold_scale}")
    if int(cfg.max_milestones) <= 0:
        raise ValueError(f"max_milestones must be > 0; got: {cfg.max_milestones}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")


def default_fund_config() -> FundConfig:
    return FundConfig(
        deployment_id="quadfund-dev",
        # Without an explicit config file we never drop into a permissive posture.
        mode="prod",
        db_path="./data/quadfund.db",
        admin_account="admin",
        voting_engine_account="SYSTEM:voting_engine",
        mint_rate_micros=MINT_RATE_SCALE,
        min_delay_s=2 * DAY_S,
        grace_period_s=14 * DAY_S,
        proposal_window_s=7 * DAY_S,
        vote_threshold_scale=100,
        max_milestones=10,
        single_vote_floor=True,
        api_host="0.0.0.0",
        api_port=8000,
        log_level="INFO",
    )


def fund_config_from_dict(raw: Json) -> FundConfig:
    if not isinstance(raw, dict):
        raise ValueError("fund config must be a JSON object")

    d = default_fund_config()

    if "mint_rate" in raw and "mint_rate_micros" not in raw:
        mint_rate_micros = parse_mint_rate(raw.get("mint_rate"))
    else:
        mint_rate_micros = _as_int(raw.get("mint_rate_micros"), d.mint_rate_micros)

    cfg = FundConfig(
        deployment_id=_as_str(raw.get("deployment_id"), d.deployment_id),
        mode=_as_str(raw.get("mode"), d.mode),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        admin_account=_as_str(raw.get("admin_account"), d.admin_account),
        voting_engine_account=_as_str(raw.get("voting_engine_account"), d.voting_engine_account),
        mint_rate_micros=mint_rate_micros,
        min_delay_s=_as_int(raw.get("min_delay_s"), d.min_delay_s),
        grace_period_s=_as_int(raw.get("grace_period_s"), d.grace_period_s),
        proposal_window_s=_as_int(raw.get("proposal_window_s"), d.proposal_window_s),
        vote_threshold_scale=_as_int(raw.get("vote_threshold_scale"), d.vote_threshold_scale),
        max_milestones=_as_int(raw.get("max_milestones"), d.max_milestones),
        single_vote_floor=_as_bool(raw.get("single_vote_floor"), d.single_vote_floor),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level),
    )

    validate_fund_config(cfg)
    return cfg


def read_fund_config_file(path: str) -> FundConfig:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return fund_config_from_dict(raw)


def load_fund_config(*, config_path: Optional[str] = None) -> FundConfig:
    p = config_path or os.environ.get("QUADFUND_CONFIG_PATH")
    if p:
        cfg = read_fund_config_file(p)
    else:
        cfg = default_fund_config()

    # QUADFUND_DB_PATH lets operators relocate the database without a config file.
    db_override = (os.environ.get("QUADFUND_DB_PATH") or "").strip()
    if db_override:
        cfg = replace(cfg, db_path=db_override)

    # Listener and log level follow the same pattern so a .env file can tune them.
    overrides: Json = {}
    host = (os.environ.get("QUADFUND_API_HOST") or "").strip()
    if host:
        overrides["api_host"] = host
    port = (os.environ.get("QUADFUND_API_PORT") or "").strip()
    if port:
        overrides["api_port"] = _as_int(port, cfg.api_port)
    level = (os.environ.get("QUADFUND_LOG_LEVEL") or "").strip()
    if level:
        overrides["log_level"] = level.upper()
    if overrides:
        cfg = replace(cfg, **overrides)

    validate_fund_config(cfg)
    return cfg


def apply_fund_config_to_env(cfg: FundConfig) -> None:
    validate_fund_config(cfg)
    os.environ["QUADFUND_DEPLOYMENT_ID"] = cfg.deployment_id
    # Expose mode so the sqlite layer picks its durability defaults.
    os.environ["QUADFUND_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["QUADFUND_DB_PATH"] = cfg.db_path
    os.environ["QUADFUND_LOG_LEVEL"] = cfg.log_level
    os.environ["QUADFUND_API_HOST"] = cfg.api_host
    os.environ["QUADFUND_API_PORT"] = str(int(cfg.api_port))
