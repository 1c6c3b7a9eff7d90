# src/launchpad/api/__main__.py
from __future__ import annotations

import argparse
import os
from typing import List, Optional

import uvicorn

from launchpad.env import env_int, load_dotenv_if_present


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="launchpad-api", description="Serve the launchpad HTTP API.")
    ap.add_argument("--config", default=None, help="JSON config file (overrides LAUNCHPAD_CONFIG_PATH)")
    ap.add_argument("--host", default=None, help="bind address (default LAUNCHPAD_API_HOST or 127.0.0.1)")
    ap.add_argument("--port", type=int, default=None, help="bind port (default LAUNCHPAD_API_PORT or 8080)")
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)

    # .env first: the config file and app factory both read LAUNCHPAD_* vars.
    load_dotenv_if_present()
    if args.config:
        os.environ["LAUNCHPAD_CONFIG_PATH"] = args.config

    from launchpad.api.app import create_app

    # create_app() exports the loaded config, so host/port are read after it.
    app = create_app()

    host = args.host or os.getenv("LAUNCHPAD_API_HOST", "127.0.0.1")
    port = args.port or env_int("LAUNCHPAD_API_PORT", 8080)
    level = os.getenv("LAUNCHPAD_LOG_LEVEL", "INFO").strip().lower()

    uvicorn.run(app, host=host, port=port, log_level=level, log_config=None)


if __name__ == "__main__":
    main()
