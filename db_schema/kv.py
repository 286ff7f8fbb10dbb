# db_schema/kv.py
"""SQLite schema: key-value documents + presence sets.

Tables
------
- kv_documents: one JSON document per key (counters, meta, overrides).
- kv_members: presence set members with last-seen epoch milliseconds.

Notes
-----
* Keys carry the configured namespace prefix; prefix scans use the PK index.
* Timestamps in created_at/updated_at are ISO strings (UTC, Z suffix).
"""

from __future__ import annotations

import sqlite3
from typing import Callable, Mapping

EnsureColumnsFn = Callable[[sqlite3.Cursor, str, Mapping[str, str]], None]


def ddl(*, now: str, schema_version: str) -> str:  # noqa: ARG001
    """Return DDL SQL for key-value tables (as a single executescript string)."""

    return """
                CREATE TABLE IF NOT EXISTS kv_documents (
                    key TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS kv_members (
                    set_key TEXT NOT NULL,
                    member TEXT NOT NULL,
                    seen_ms INTEGER NOT NULL,
                    PRIMARY KEY (set_key, member)
                );

                CREATE INDEX IF NOT EXISTS idx_kv_members_set_seen
                    ON kv_members(set_key, seen_ms);
"""


def migrate(cur: sqlite3.Cursor, *, ensure_columns: EnsureColumnsFn) -> None:
    """Bring databases created before the revision counter up to date."""
    ensure_columns(
        cur,
        "kv_documents",
        {"revision": "INTEGER NOT NULL DEFAULT 0"},
    )
