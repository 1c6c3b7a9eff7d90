#!/usr/bin/env python3
"""
Initialise a launchpad factory ledger and record where it lives.

Boots a LaunchpadExecutor against the configured SQLite database (creating
the genesis snapshot on first run), prints a deployment summary and writes
deployment-info.json.

Usage:
  python3 scripts/deploy_factory.py
  python3 scripts/deploy_factory.py --config ./launchpad.json --out ./deployment-info.json

Config comes from --config, else LAUNCHPAD_CONFIG_PATH, else defaults.
"""

from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone
from pathlib import Path

from launchpad.env import load_dotenv_if_present
from launchpad.ledger.addresses import network_info
from launchpad.runtime.chain_config import load_launchpad_config
from launchpad.runtime.executor_boot import boot_config_from_launchpad_config, build_executor


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", default=None, help="Path to a launchpad JSON config")
    ap.add_argument("--out", default="deployment-info.json", help="Where to write the deployment summary")
    args = ap.parse_args()

    load_dotenv_if_present()
    cfg = load_launchpad_config(config_path=args.config)

    print("Initialising launchpad factory...")
    with build_executor(boot_config_from_launchpad_config(cfg)) as ex:
        st = ex.read_state()
        fac = st["factory"]
        info = {
            "contract": "TokenFactory",
            "db_path": str(Path(cfg.db_path).resolve()),
            "network": st["network"],
            "chain_id": network_info(st["network"]).chain_id,
            "owner": ex.owner(),
            "deployment_fee_wei": ex.deployment_fee(),
            "allocation_policy": fac["allocation_policy"],
            "token_count": ex.token_count(),
            "seq": int(st.get("seq", 0)),
            "genesis_ms": int(st.get("created_ms", 0)),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    print("\n=== Deployment Summary ===")
    for k in ("contract", "db_path", "network", "owner", "deployment_fee_wei", "allocation_policy", "token_count"):
        print(f"{k}: {info[k]}")

    out = Path(args.out)
    out.write_text(json.dumps(info, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    print(f"\nDeployment info saved to {out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
