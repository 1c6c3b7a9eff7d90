# src/launchpad/runtime/sqlite_db.py
"""SQLite persistence for the launchpad ledger.

One durable file holds the ledger snapshot, the journal of committed calls
and the event log. SQLite admits one writer at a time; `write_tx()` takes
the write lock up front with BEGIN IMMEDIATE and retries on contention
until a deadline, so concurrent processes serialize instead of failing.
"""

from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from launchpad.env import env_flag, env_int

Json = Dict[str, Any]

_SYNC_LEVELS = ("OFF", "NORMAL", "FULL", "EXTRA")

_SCHEMA: Tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS meta (
      key TEXT PRIMARY KEY,
      value TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS ledger_state (
      id INTEGER PRIMARY KEY CHECK (id = 1),
      seq INTEGER NOT NULL,
      state_json TEXT NOT NULL,
      updated_ts_ms INTEGER NOT NULL
    );
    """,
    # Committed calls in order; replaying them over the genesis snapshot
    # reproduces ledger_state.
    """
    CREATE TABLE IF NOT EXISTS calls (
      seq INTEGER PRIMARY KEY,
      call TEXT NOT NULL,
      caller TEXT NOT NULL,
      envelope_json TEXT NOT NULL,
      result_json TEXT NOT NULL,
      created_ts_ms INTEGER NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_calls_caller ON calls(caller);",
    """
    CREATE TABLE IF NOT EXISTS events (
      event_id INTEGER PRIMARY KEY AUTOINCREMENT,
      seq INTEGER NOT NULL REFERENCES calls(seq),
      name TEXT NOT NULL,
      token TEXT NOT NULL,
      data_json TEXT NOT NULL,
      created_ts_ms INTEGER NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_events_name ON events(name);",
    "CREATE INDEX IF NOT EXISTS idx_events_token ON events(token);",
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding for snapshots, journal rows and events.

    No default=str: a non-JSON value leaking into ledger state is a bug and
    must fail the write instead of being silently stringified.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class SqliteTuning:
    """Connection settings, read from LAUNCHPAD_SQLITE_* once per SqliteDB."""

    synchronous: str
    connect_timeout_ms: int
    busy_timeout_ms: int
    wal_autocheckpoint: int
    journal_size_limit: int
    cache_size_kib: int
    allow_non_wal: bool
    write_deadline_ms: int
    backoff_base_ms: int
    backoff_max_ms: int

    @classmethod
    def from_env(cls) -> "SqliteTuning":
        # Durability follows the deployment mode unless overridden.
        mode = (os.environ.get("LAUNCHPAD_MODE") or "prod").strip().lower()
        sync_default = "FULL" if mode == "prod" else "NORMAL"
        sync = (os.environ.get("LAUNCHPAD_SQLITE_SYNCHRONOUS") or sync_default).strip().upper()

        connect_ms = max(0, env_int("LAUNCHPAD_SQLITE_CONNECT_TIMEOUT_MS", 30_000))
        base_ms = max(1, env_int("LAUNCHPAD_SQLITE_WRITE_BACKOFF_BASE_MS", 5))
        return cls(
            synchronous=sync if sync in _SYNC_LEVELS else sync_default,
            connect_timeout_ms=connect_ms,
            busy_timeout_ms=max(0, env_int("LAUNCHPAD_SQLITE_BUSY_TIMEOUT_MS", connect_ms)),
            wal_autocheckpoint=max(1, env_int("LAUNCHPAD_SQLITE_WAL_AUTOCHECKPOINT", 1000)),
            journal_size_limit=max(0, env_int("LAUNCHPAD_SQLITE_JOURNAL_SIZE_LIMIT", 64 * 1024 * 1024)),
            cache_size_kib=max(0, env_int("LAUNCHPAD_SQLITE_CACHE_SIZE_KIB", 64 * 1024)),
            allow_non_wal=env_flag("LAUNCHPAD_SQLITE_ALLOW_NON_WAL"),
            write_deadline_ms=max(250, env_int("LAUNCHPAD_SQLITE_WRITE_DEADLINE_MS", 30_000)),
            backoff_base_ms=base_ms,
            backoff_max_ms=max(base_ms, env_int("LAUNCHPAD_SQLITE_WRITE_BACKOFF_MAX_MS", 250)),
        )

    def pragmas(self) -> List[str]:
        return [
            f"PRAGMA synchronous={self.synchronous};",
            "PRAGMA foreign_keys=ON;",
            "PRAGMA temp_store=MEMORY;",
            f"PRAGMA wal_autocheckpoint={self.wal_autocheckpoint};",
            f"PRAGMA journal_size_limit={self.journal_size_limit};",
            # Negative cache_size is in KiB rather than pages.
            f"PRAGMA cache_size={-self.cache_size_kib};",
            f"PRAGMA busy_timeout={self.busy_timeout_ms};",
        ]


def _is_contention(e: sqlite3.OperationalError) -> bool:
    msg = str(e).lower()
    return "database is locked" in msg or "database is busy" in msg


class SqliteDB:
    """Connection factory and write-transaction helper for one ledger file.

    Connections are never shared between threads; each read or write opens
    its own and closes it afterwards.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str, tuning: Optional[SqliteTuning] = None) -> None:
        self.path = str(path)
        self.tuning = tuning or SqliteTuning.from_env()

    def _connect(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        con = sqlite3.connect(
            self.path,
            timeout=self.tuning.connect_timeout_ms / 1000.0,
            isolation_level=None,  # BEGIN/COMMIT are issued explicitly
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        # WAL lets API readers proceed while the executor commits.
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        journal_mode = str(row[0]).strip().lower() if row is not None else ""
        if journal_mode and journal_mode != "wal" and not self.tuning.allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{journal_mode}', expected 'wal'")

        for stmt in self.tuning.pragmas():
            con.execute(stmt)
        return con

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    def init_schema(self) -> None:
        """Create tables if needed; refuse a file written by another schema version."""
        with self.write_tx() as con:
            for ddl in _SCHEMA:
                con.execute(ddl)

            row = con.execute("SELECT value FROM meta WHERE key='schema_version';").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
                return
            have = str(row["value"]).strip()
            if have != str(self.SCHEMA_VERSION):
                raise RuntimeError(
                    f"ledger database {self.path} has schema_version={have!r}, this build expects "
                    f"{self.SCHEMA_VERSION}; refusing to open it"
                )

    def _execute_until_deadline(self, con: sqlite3.Connection, sql: str, deadline_ms: int) -> None:
        attempt = 0
        while True:
            try:
                con.execute(sql)
                return
            except sqlite3.OperationalError as e:
                if not _is_contention(e) or _now_ms() >= deadline_ms:
                    raise
            # Exponential backoff with jitter, capped.
            step_ms = min(self.tuning.backoff_max_ms, self.tuning.backoff_base_ms * (2 ** min(attempt, 8)))
            time.sleep(step_ms * (0.5 + random.random()) / 1000.0)
            attempt += 1

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """One IMMEDIATE write transaction.

        BEGIN and COMMIT retry on lock contention until
        LAUNCHPAD_SQLITE_WRITE_DEADLINE_MS has passed. An exception in the
        block rolls back and propagates.
        """
        deadline = _now_ms() + self.tuning.write_deadline_ms
        with self.connection() as con:
            self._execute_until_deadline(con, "BEGIN IMMEDIATE;", deadline)
            try:
                yield con
                self._execute_until_deadline(con, "COMMIT;", deadline)
            except BaseException:
                try:
                    con.execute("ROLLBACK;")
                except sqlite3.Error:
                    pass
                raise


class SqliteLedgerStore:
    """Ledger snapshot, call journal and event log persisted in SQLite.

    - read(): latest snapshot
    - write(st): overwrite the snapshot (genesis / tests)
    - update(mut): read-modify-write inside one write transaction
    - commit(...): snapshot + journal row + events in one transaction
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM ledger_state WHERE id=1;").fetchone() is not None

    @staticmethod
    def _load(row: Optional[sqlite3.Row]) -> Json:
        if row is None:
            raise FileNotFoundError("sqlite ledger_state is missing")
        st = json.loads(str(row["state_json"]))
        if not isinstance(st, dict):
            raise ValueError("ledger_state is not a JSON object")
        return st

    def read(self) -> Json:
        with self._db.connection() as con:
            return self._load(con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone())

    @staticmethod
    def _upsert_snapshot(con: sqlite3.Connection, st: Json) -> None:
        con.execute(
            """
            INSERT INTO ledger_state(id, seq, state_json, updated_ts_ms)
            VALUES(1, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              seq=excluded.seq,
              state_json=excluded.state_json,
              updated_ts_ms=excluded.updated_ts_ms;
            """,
            (int(st.get("seq", 0)), _canon_json(st), _now_ms()),
        )

    def commit(self, *, st: Json, envelope: Json, result: Json, events: List[Json]) -> None:
        """Atomically persist one applied call.

        A crash at any point leaves either all of (snapshot, journal row,
        events) or none of them.
        """
        seq = int(st.get("seq", 0))
        now = _now_ms()
        with self._db.write_tx() as con:
            con.execute(
                "INSERT INTO calls(seq, call, caller, envelope_json, result_json, created_ts_ms) VALUES(?,?,?,?,?,?);",
                (
                    seq,
                    str(envelope.get("call") or ""),
                    str(envelope.get("caller") or ""),
                    _canon_json(envelope),
                    _canon_json(result),
                    now,
                ),
            )
            for ev in events:
                con.execute(
                    "INSERT INTO events(seq, name, token, data_json, created_ts_ms) VALUES(?,?,?,?,?);",
                    (seq, str(ev.get("name") or ""), str(ev.get("token") or ""), _canon_json(ev.get("data") or {}), now),
                )
            self._upsert_snapshot(con, st)

    def get_meta(self, key: str) -> Optional[str]:
        with self._db.connection() as con:
            row = con.execute("SELECT value FROM meta WHERE key=? LIMIT 1;", (str(key),)).fetchone()
            return str(row["value"]) if row is not None else None

    def write_genesis(self, st: Json) -> None:
        """Persist the genesis snapshot and its copy in meta, once."""
        with self._db.write_tx() as con:
            row = con.execute("SELECT 1 FROM meta WHERE key='genesis_json' LIMIT 1;").fetchone()
            if row is not None:
                raise RuntimeError("genesis already written")
            con.execute("INSERT INTO meta(key, value) VALUES('genesis_json', ?);", (_canon_json(st),))
            self._upsert_snapshot(con, st)

    def read_genesis(self) -> Json:
        raw = self.get_meta("genesis_json")
        if raw is None:
            raise FileNotFoundError("sqlite genesis snapshot is missing")
        st = json.loads(raw)
        if not isinstance(st, dict):
            raise ValueError("genesis snapshot is not a JSON object")
        return st

    def max_call_seq(self) -> int:
        with self._db.connection() as con:
            row = con.execute("SELECT MAX(seq) AS s FROM calls;").fetchone()
            return int(row["s"]) if (row is not None and row["s"] is not None) else 0

    def iter_calls(self, *, since_seq: int = 0) -> Iterator[Json]:
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT seq, envelope_json FROM calls WHERE seq > ? ORDER BY seq ASC;", (int(since_seq),)
            ).fetchall()
        for r in rows:
            env = json.loads(str(r["envelope_json"]))
            env["seq"] = int(r["seq"])
            yield env

    def list_events(
        self,
        *,
        since_id: int = 0,
        limit: int = 100,
        name: Optional[str] = None,
        token: Optional[str] = None,
    ) -> List[Json]:
        sql = "SELECT event_id, seq, name, token, data_json, created_ts_ms FROM events WHERE event_id > ?"
        args: List[Any] = [int(since_id)]
        if name:
            sql += " AND name = ?"
            args.append(str(name))
        if token:
            sql += " AND token = ?"
            args.append(str(token))
        sql += " ORDER BY event_id ASC LIMIT ?;"
        args.append(max(1, int(limit)))

        with self._db.connection() as con:
            rows = con.execute(sql, tuple(args)).fetchall()
        return [
            {
                "event_id": int(r["event_id"]),
                "seq": int(r["seq"]),
                "name": str(r["name"]),
                "token": str(r["token"]),
                "data": json.loads(str(r["data_json"])),
                "created_ts_ms": int(r["created_ts_ms"]),
            }
            for r in rows
        ]
