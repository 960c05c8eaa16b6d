from __future__ import annotations

import json
import os
from dataclasses import replace
from pathlib import Path

import pytest

from quadfund.runtime import gates
from quadfund.runtime.fund_config import (
    MINT_RATE_SCALE,
    apply_fund_config_to_env,
    default_fund_config,
    fund_config_from_dict,
    load_fund_config,
    validate_fund_config,
)
from quadfund.runtime.genesis import genesis_state


def test_defaults_are_valid_and_conservative() -> None:
    cfg = default_fund_config()
    validate_fund_config(cfg)
    assert cfg.mode == "prod"
    assert cfg.mint_rate_micros == MINT_RATE_SCALE
    assert cfg.min_delay_s == 2 * 86_400
    assert cfg.grace_period_s == 14 * 86_400
    assert cfg.proposal_window_s == 7 * 86_400
    assert cfg.max_milestones == 10


def test_from_dict_human_mint_rate() -> None:
    cfg = fund_config_from_dict({"deployment_id": "relief-2026", "mode": "testnet", "mint_rate": "0.5"})
    assert cfg.deployment_id == "relief-2026"
    assert cfg.mint_rate_micros == 500_000

    # Explicit micros win over the human rate.
    cfg = fund_config_from_dict({"mint_rate": "3", "mint_rate_micros": 1_500_000})
    assert cfg.mint_rate_micros == 1_500_000


@pytest.mark.parametrize(
    "raw",
    [
        {"mode": "staging"},
        {"admin_account": "ops", "voting_engine_account": "ops"},
        {"min_delay_s": -1},
        {"proposal_window_s": 0},
        {"vote_threshold_scale": 0},
        {"api_port": 70_000},
        {"mint_rate": "-2"},
    ],
)
def test_from_dict_rejects(raw) -> None:
    with pytest.raises(ValueError):
        fund_config_from_dict(raw)


def test_load_from_file_with_db_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "fund.json"
    path.write_text(json.dumps({"deployment_id": "file-fund", "mode": "dev", "db_path": "./ignored.db"}))
    monkeypatch.setenv("QUADFUND_CONFIG_PATH", str(path))
    monkeypatch.setenv("QUADFUND_DB_PATH", str(tmp_path / "real.db"))

    cfg = load_fund_config()
    assert cfg.deployment_id == "file-fund"
    assert cfg.db_path == str(tmp_path / "real.db")


def test_listener_and_log_level_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("QUADFUND_CONFIG_PATH", raising=False)
    monkeypatch.setenv("QUADFUND_API_HOST", "127.0.0.1")
    monkeypatch.setenv("QUADFUND_API_PORT", "9300")
    monkeypatch.setenv("QUADFUND_LOG_LEVEL", "debug")

    cfg = load_fund_config()
    assert (cfg.api_host, cfg.api_port, cfg.log_level) == ("127.0.0.1", 9300, "DEBUG")


def test_apply_to_env() -> None:
    cfg = replace(default_fund_config(), mode="Dev", api_port=9100)
    apply_fund_config_to_env(cfg)
    assert os.environ["QUADFUND_MODE"] == "dev"
    assert os.environ["QUADFUND_API_PORT"] == "9100"
    assert os.environ["QUADFUND_DEPLOYMENT_ID"] == cfg.deployment_id


def test_genesis_seeds_params_and_roles() -> None:
    cfg = replace(default_fund_config(), admin_account="board", voting_engine_account="engine")
    st = genesis_state(cfg)
    assert st["op_seq"] == 0
    assert st["params"]["voting_engine_account"] == "engine"
    assert st["params"]["vote_threshold_scale"] == 100
    assert gates.has_role(st, "board", gates.DISBURSER)
    assert gates.has_role(st, "engine", gates.VOTING_ENGINE)
    assert not gates.has_role(st, "engine", gates.ADMIN)
