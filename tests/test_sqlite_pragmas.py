from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from launchpad.runtime.sqlite_db import SqliteDB


def _pragma(con: sqlite3.Connection, name: str) -> int | str:
    row = con.execute(f"PRAGMA {name};").fetchone()
    if row is None:
        raise AssertionError(f"missing pragma: {name}")
    return row[0]


def test_sqlite_operational_pragmas_are_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LAUNCHPAD_MODE", "prod")
    monkeypatch.delenv("LAUNCHPAD_SQLITE_SYNCHRONOUS", raising=False)
    monkeypatch.setenv("LAUNCHPAD_SQLITE_BUSY_TIMEOUT_MS", "1234")
    monkeypatch.setenv("LAUNCHPAD_SQLITE_WAL_AUTOCHECKPOINT", "777")
    monkeypatch.setenv("LAUNCHPAD_SQLITE_JOURNAL_SIZE_LIMIT", str(8 * 1024 * 1024))
    monkeypatch.setenv("LAUNCHPAD_SQLITE_CACHE_SIZE_KIB", str(4096))

    db = SqliteDB(path=str(tmp_path / "launchpad.db"))
    db.init_schema()

    with db.connection() as con:
        assert str(_pragma(con, "journal_mode")).lower() == "wal"

        # FULL is the prod default.
        assert int(_pragma(con, "synchronous")) == 2

        assert int(_pragma(con, "foreign_keys")) == 1
        # MEMORY
        assert int(_pragma(con, "temp_store")) == 2

        assert int(_pragma(con, "busy_timeout")) == 1234
        assert int(_pragma(con, "wal_autocheckpoint")) == 777
        assert int(_pragma(con, "journal_size_limit")) == 8 * 1024 * 1024
        assert int(_pragma(con, "cache_size")) == -4096


def test_sqlite_synchronous_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LAUNCHPAD_SQLITE_SYNCHRONOUS", "normal")

    db = SqliteDB(path=str(tmp_path / "launchpad.db"))
    db.init_schema()

    with db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 1


def test_init_schema_creates_ledger_tables(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "nested" / "launchpad.db"))
    db.init_schema()

    with db.connection() as con:
        names = {r[0] for r in con.execute("SELECT name FROM sqlite_master WHERE type='table';").fetchall()}
    assert {"meta", "ledger_state", "calls", "events"} <= names
