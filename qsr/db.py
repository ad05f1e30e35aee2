from __future__ import annotations

import os
import sqlite3
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from .models import PassResult, safe_text, utc_now


def _resolve_db_path(db_path: Path | str) -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory, the DB file is placed inside it.
    The parent directory is created when missing.
    """
    p = os.path.abspath(str(db_path))

    if os.path.isdir(p):
        p = os.path.join(p, "qsr.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


@dataclass(frozen=True)
class EventRow:
    id: int
    ts: str
    level: str
    unit: str | None
    message: str


@dataclass(frozen=True)
class PassRow:
    id: int
    trigger: str
    started_at: str
    finished_at: str | None
    created: int
    updated: int
    removed: int
    conflicts: int
    ok: int
    summary: str


@dataclass(frozen=True)
class RegistryRow:
    name: str
    link_path: str
    source_path: str
    revision: int
    updated_at: str


def _rows_to_dataclass(rows: Iterable[sqlite3.Row], cls: Any) -> list[Any]:
    out: list[Any] = []
    for r in rows:
        out.append(cls(**dict(r)))
    return out


class Store:
    """sqlite-backed event journal, pass history and ownership registry."""

    def __init__(self, db_path: Path | str, echo: bool = True) -> None:
        self.path = _resolve_db_path(db_path)
        self.echo = echo

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        with self.connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS events (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  ts TEXT NOT NULL,
                  level TEXT NOT NULL,
                  unit TEXT,
                  message TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS passes (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  trigger TEXT NOT NULL,
                  started_at TEXT NOT NULL,
                  finished_at TEXT,
                  created INTEGER NOT NULL,
                  updated INTEGER NOT NULL,
                  removed INTEGER NOT NULL,
                  conflicts INTEGER NOT NULL,
                  ok INTEGER NOT NULL,
                  summary TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS managed_units (
                  name TEXT PRIMARY KEY,
                  link_path TEXT NOT NULL,
                  source_path TEXT NOT NULL,
                  revision INTEGER NOT NULL,
                  updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value INTEGER NOT NULL
                );

                INSERT OR IGNORE INTO meta (key, value) VALUES ('revision', 0);

                CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
                """
            )

    # --- events ---

    def log_event(self, level: str, message: str, unit: str | None = None) -> None:
        level = level.upper()
        message = safe_text(message)
        unit = safe_text(unit) if unit is not None else None
        if self.echo:
            stamp = datetime.now().strftime("%H:%M:%S")
            print(f"[qsr] {level:<5} {stamp} {message}", file=sys.stderr, flush=True)
        with self.connect() as conn:
            conn.execute(
                "INSERT INTO events (ts, level, unit, message) VALUES (?, ?, ?, ?)",
                (utc_now(), level, unit, message),
            )

    def latest_events(self, limit: int = 100) -> list[EventRow]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
            return _rows_to_dataclass(rows, EventRow)

    # --- passes ---

    def record_pass(self, result: PassResult) -> int:
        with self.connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO passes (trigger, started_at, finished_at, created, updated, removed, conflicts, ok, summary)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    result.trigger,
                    result.started_at,
                    result.finished_at,
                    len(result.created),
                    len(result.updated),
                    len(result.removed),
                    len(result.conflicts),
                    1 if result.ok else 0,
                    result.summary(),
                ),
            )
            return int(cur.lastrowid)

    def latest_passes(self, limit: int = 20) -> list[PassRow]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM passes ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
            return _rows_to_dataclass(rows, PassRow)

    # --- ownership registry ---

    def _bump_revision(self, conn: sqlite3.Connection) -> int:
        conn.execute("UPDATE meta SET value=value+1 WHERE key='revision'")
        row = conn.execute("SELECT value FROM meta WHERE key='revision'").fetchone()
        return int(row["value"])

    def revision(self) -> int:
        with self.connect() as conn:
            row = conn.execute("SELECT value FROM meta WHERE key='revision'").fetchone()
            return int(row["value"]) if row else 0

    def register_unit(self, name: str, link_path: Path | str, source_path: Path | str) -> int:
        """Record ``name`` as owned by this controller. Returns the new revision."""
        with self.connect() as conn:
            rev = self._bump_revision(conn)
            conn.execute(
                """
                INSERT INTO managed_units (name, link_path, source_path, revision, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                  link_path=excluded.link_path,
                  source_path=excluded.source_path,
                  revision=excluded.revision,
                  updated_at=excluded.updated_at
                """,
                (safe_text(name), safe_text(link_path), safe_text(source_path), rev, utc_now()),
            )
            return rev

    def unregister_unit(self, name: str) -> int:
        with self.connect() as conn:
            rev = self._bump_revision(conn)
            conn.execute("DELETE FROM managed_units WHERE name=?", (safe_text(name),))
            return rev

    def get_unit(self, name: str) -> RegistryRow | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM managed_units WHERE name=?", (safe_text(name),)).fetchone()
            return RegistryRow(**dict(row)) if row else None

    def list_units(self) -> list[RegistryRow]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM managed_units ORDER BY name").fetchall()
            return _rows_to_dataclass(rows, RegistryRow)

    def registered_names(self) -> set[str]:
        return {r.name for r in self.list_units()}
