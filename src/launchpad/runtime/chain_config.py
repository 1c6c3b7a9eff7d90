# src/launchpad/runtime/chain_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from launchpad.ledger.addresses import NETWORKS, get_address_validator
from launchpad.ledger.config_validator import ALLOCATION_POLICIES

Json = Dict[str, Any]

# 0.01 ether
DEFAULT_DEPLOYMENT_FEE_WEI = 10**16

# Well-known development account; replace with the operator's address in any real config.
DEFAULT_OWNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


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


@dataclass(frozen=True)
class LaunchpadConfig:
    network: str
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file for snapshot + journal + events.
    db_path: str

    # Genesis-only: later changes go through owner calls.
    owner: str
    deployment_fee_wei: int

    # "headroom" | "exact" | "creator"; fixed once the ledger exists.
    allocation_policy: str

    api_host: str
    api_port: int

    log_level: str

    # Genesis-only native funding for dev and testnet ledgers; address -> wei.
    genesis_balances: Dict[str, int] = field(default_factory=dict)


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_launchpad_config(cfg: LaunchpadConfig) -> None:
    """Fail-fast validation for operator config."""

    network = str(cfg.network or "").strip().lower()
    if network not in NETWORKS:
        raise ValueError(f"network must be one of {sorted(NETWORKS)}; got: {cfg.network!r}")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    av = get_address_validator(network)
    if not av.is_valid(cfg.owner) or av.is_zero(cfg.owner):
        raise ValueError(f"owner must be a valid non-zero {av.family} address; got: {cfg.owner!r}")

    if int(cfg.deployment_fee_wei) < 0:
        raise ValueError(f"deployment_fee_wei must be >= 0; got: {cfg.deployment_fee_wei}")

    if cfg.allocation_policy not in ALLOCATION_POLICIES:
        raise ValueError(f"allocation_policy must be one of {ALLOCATION_POLICIES}; got: {cfg.allocation_policy!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if cfg.genesis_balances:
        if mode == "prod":
            raise ValueError("genesis_balances are refused when mode=prod; fund accounts with CREDIT_NATIVE deposits")
        for addr, amount in cfg.genesis_balances.items():
            if not av.is_valid(addr):
                raise ValueError(f"genesis_balances key must be a valid {av.family} address; got: {addr!r}")
            if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
                raise ValueError(f"genesis_balances[{addr!r}] must be a non-negative integer; got: {amount!r}")


def default_launchpad_config() -> LaunchpadConfig:
    return LaunchpadConfig(
        network="sepolia",
        mode="prod",
        db_path="./data/launchpad.db",
        owner=DEFAULT_OWNER,
        deployment_fee_wei=DEFAULT_DEPLOYMENT_FEE_WEI,
        allocation_policy="headroom",
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def read_launchpad_config_file(path: str) -> LaunchpadConfig:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("launchpad config must be a JSON object")

    genesis_balances = raw.get("genesis_balances") or {}
    if not isinstance(genesis_balances, dict):
        raise ValueError("genesis_balances must be a JSON object of address -> wei")

    d = default_launchpad_config()

    cfg = LaunchpadConfig(
        network=_as_str(raw.get("network"), d.network).strip().lower(),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        owner=_as_str(raw.get("owner"), d.owner).strip(),
        deployment_fee_wei=_as_int(raw.get("deployment_fee_wei"), d.deployment_fee_wei),
        allocation_policy=_as_str(raw.get("allocation_policy"), d.allocation_policy).strip().lower(),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
        genesis_balances=dict(genesis_balances),
    )

    validate_launchpad_config(cfg)
    return cfg


def load_launchpad_config(*, config_path: Optional[str] = None) -> LaunchpadConfig:
    p = config_path or os.environ.get("LAUNCHPAD_CONFIG_PATH")
    if p:
        return read_launchpad_config_file(p)

    cfg = default_launchpad_config()
    validate_launchpad_config(cfg)
    return cfg


def apply_launchpad_config_to_env(cfg: LaunchpadConfig) -> None:
    validate_launchpad_config(cfg)
    os.environ["LAUNCHPAD_NETWORK"] = cfg.network
    os.environ["LAUNCHPAD_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["LAUNCHPAD_DB_PATH"] = cfg.db_path
    os.environ["LAUNCHPAD_OWNER"] = cfg.owner
    os.environ["LAUNCHPAD_DEPLOYMENT_FEE_WEI"] = str(int(cfg.deployment_fee_wei))
    os.environ["LAUNCHPAD_ALLOCATION_POLICY"] = cfg.allocation_policy
    os.environ["LAUNCHPAD_API_HOST"] = cfg.api_host
    os.environ["LAUNCHPAD_API_PORT"] = str(int(cfg.api_port))
    os.environ["LAUNCHPAD_LOG_LEVEL"] = cfg.log_level
    if cfg.genesis_balances:
        os.environ["LAUNCHPAD_GENESIS_BALANCES"] = json.dumps(cfg.genesis_balances, sort_keys=True)
    else:
        os.environ.pop("LAUNCHPAD_GENESIS_BALANCES", None)
