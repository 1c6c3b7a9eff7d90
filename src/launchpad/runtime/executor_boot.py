# src/launchpad/runtime/executor_boot.py

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from launchpad.runtime.chain_config import DEFAULT_DEPLOYMENT_FEE_WEI, DEFAULT_OWNER, LaunchpadConfig
from launchpad.runtime.executor import LaunchpadExecutor


@dataclass
class ExecutorBootConfig:
    db_path: str
    network: str
    owner: str
    deployment_fee_wei: int
    allocation_policy: str
    genesis_balances: Dict[str, int] = field(default_factory=dict)


def _genesis_balances_from_env() -> Dict[str, int]:
    raw = (os.environ.get("LAUNCHPAD_GENESIS_BALANCES") or "").strip()
    if not raw:
        return {}
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("LAUNCHPAD_GENESIS_BALANCES must be a JSON object of address -> wei")
    return {str(k): int(v) for k, v in parsed.items()}


def boot_config_from_env() -> ExecutorBootConfig:
    return ExecutorBootConfig(
        db_path=os.environ.get("LAUNCHPAD_DB_PATH", "./data/launchpad.db"),
        network=os.environ.get("LAUNCHPAD_NETWORK", "sepolia"),
        owner=os.environ.get("LAUNCHPAD_OWNER", DEFAULT_OWNER),
        deployment_fee_wei=int(os.environ.get("LAUNCHPAD_DEPLOYMENT_FEE_WEI", str(DEFAULT_DEPLOYMENT_FEE_WEI))),
        allocation_policy=os.environ.get("LAUNCHPAD_ALLOCATION_POLICY", "headroom"),
        genesis_balances=_genesis_balances_from_env(),
    )


def boot_config_from_launchpad_config(cfg: LaunchpadConfig) -> ExecutorBootConfig:
    return ExecutorBootConfig(
        db_path=cfg.db_path,
        network=cfg.network,
        owner=cfg.owner,
        deployment_fee_wei=int(cfg.deployment_fee_wei),
        allocation_policy=cfg.allocation_policy,
        genesis_balances=dict(cfg.genesis_balances),
    )


def build_executor(cfg: Optional[ExecutorBootConfig] = None) -> LaunchpadExecutor:
    """
    Build a LaunchpadExecutor from an explicit boot config or, if omitted,
    from LAUNCHPAD_* environment variables.

    Owner, fee and genesis balances only seed a fresh database; an existing
    ledger keeps its own.
    """
    c = cfg or boot_config_from_env()
    return LaunchpadExecutor(
        db_path=c.db_path,
        network=c.network,
        owner=c.owner,
        deployment_fee=c.deployment_fee_wei,
        allocation_policy=c.allocation_policy,
        genesis_balances=c.genesis_balances,
    )
