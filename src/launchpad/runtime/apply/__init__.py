# src/launchpad/runtime/apply/__init__.py
"""Domain-specific apply modules.

Each module implements deterministic ledger state transitions for a subset of
calls and returns None for calls it does not claim.

NOTE: Keep this package import-safe (no imports of the executor).
"""

from __future__ import annotations

__all__ = [
    "factory",
    "token",
]
