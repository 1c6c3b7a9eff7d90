# src/launchpad/env.py
"""Process environment: .env loading and typed LAUNCHPAD_* lookups."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}

_LOADED = False


def env_flag(name: str, default: bool = False) -> bool:
    """Boolean variable; unset, blank or unrecognised values give `default`."""
    raw = (os.environ.get(name) or "").strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    return default


def env_int(name: str, default: int) -> int:
    try:
        return int(str(os.environ.get(name, default)).strip())
    except ValueError:
        return int(default)


def load_dotenv_if_present(dotenv_path: Optional[str] = None) -> bool:
    """Load a .env file into os.environ, once per process.

    The file is `dotenv_path`, else LAUNCHPAD_DOTENV_PATH, else ./.env.
    Variables already set in the environment win over the file. Returns True
    only when a file was found and loaded.
    """
    global _LOADED
    if _LOADED:
        return False
    _LOADED = True

    path = Path(dotenv_path or os.getenv("LAUNCHPAD_DOTENV_PATH", ".env")).expanduser()
    if not path.is_file():
        return False

    load_dotenv(dotenv_path=str(path), override=False)
    return True
