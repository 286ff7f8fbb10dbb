from __future__ import annotations

"""SQLite key-value backend.

One connection per store, shared across threads behind a lock. Every write
runs inside BEGIN IMMEDIATE so a read-modify-write also serializes against
other processes pointed at the same file.
"""

import contextlib
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence

import clock
from db_schema import SCHEMA_VERSION, apply_schema

from .base import KeyValueStore, StoreError, StoreUnavailableError, UpdateFn, decode_doc, encode_doc

logger = logging.getLogger(__name__)


def _escape_like(prefix: str) -> str:
    return prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqliteStore(KeyValueStore):
    name = "sqlite"
    persistent = True

    def __init__(self, db_path: str | Path, *, timeout: float = 10.0):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(
                self.db_path,
                timeout=timeout,
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"cannot open sqlite store {self.db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        if self.db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL;")
        self.init_db()

    def close(self) -> None:
        with self._lock:
            try:
                self._conn.close()
            except sqlite3.Error:
                logger.debug("sqlite close failed: %s", self.db_path, exc_info=True)

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """BEGIN IMMEDIATE ... COMMIT; ROLLBACK and re-raise on any exception."""
        with self._lock:
            cur = self._conn.cursor()
            try:
                cur.execute("BEGIN IMMEDIATE;")
                yield cur
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    # ------------------------
    # Schema
    # ------------------------

    def _ensure_table_columns(self, cur: sqlite3.Cursor, table: str, columns: Mapping[str, str]) -> None:
        """SQLite has no ADD COLUMN IF NOT EXISTS; check PRAGMA table_info first."""
        rows = cur.execute(f"PRAGMA table_info({table});").fetchall()
        existing = {r["name"] for r in rows}
        for col, ddl in columns.items():
            if col in existing:
                continue
            cur.execute(f"ALTER TABLE {table} ADD COLUMN {col} {ddl};")

    def init_db(self) -> None:
        """Apply SQLite schema (DDL + migrations) via db_schema."""
        with self._lock:
            cur = self._conn.cursor()
            try:
                apply_schema(
                    cur,
                    now=clock.now_iso(),
                    schema_version=SCHEMA_VERSION,
                    ensure_columns=self._ensure_table_columns,
                )
            except sqlite3.Error as exc:
                raise StoreUnavailableError(f"cannot initialize sqlite schema: {exc}") from exc
            finally:
                cur.close()

    # ------------------------
    # Documents
    # ------------------------

    def ping(self) -> bool:
        try:
            with self._lock:
                self._conn.execute("SELECT 1;").fetchone()
            return True
        except sqlite3.Error:
            logger.warning("sqlite ping failed: %s", self.db_path, exc_info=True)
            return False

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT value_json FROM kv_documents WHERE key=?;", (str(key),)
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite get failed for {key!r}: {exc}") from exc
        return decode_doc(row["value_json"], key=key) if row else None

    def _write(self, cur: sqlite3.Cursor, key: str, encoded: str, now: str) -> None:
        cur.execute(
            """
            INSERT INTO kv_documents(key, value_json, created_at, updated_at, revision)
            VALUES (?, ?, ?, ?, 1)
            ON CONFLICT(key) DO UPDATE SET
                value_json=excluded.value_json,
                updated_at=excluded.updated_at,
                revision=kv_documents.revision + 1;
            """,
            (str(key), encoded, now, now),
        )

    def set(self, key: str, value: Dict[str, Any]) -> None:
        encoded = encode_doc(value)
        try:
            with self.transaction() as cur:
                self._write(cur, key, encoded, clock.now_iso())
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite set failed for {key!r}: {exc}") from exc

    def delete(self, key: str) -> bool:
        try:
            with self.transaction() as cur:
                cur.execute("DELETE FROM kv_documents WHERE key=?;", (str(key),))
                return cur.rowcount > 0
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite delete failed for {key!r}: {exc}") from exc

    def update(self, key: str, fn: UpdateFn) -> Dict[str, Any]:
        try:
            with self.transaction() as cur:
                row = cur.execute(
                    "SELECT value_json FROM kv_documents WHERE key=?;", (str(key),)
                ).fetchone()
                current = decode_doc(row["value_json"], key=key) if row else None
                new = fn(current)
                self._write(cur, key, encode_doc(new), clock.now_iso())
                return new
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite update failed for {key!r}: {exc}") from exc

    def scan(self, prefix: str) -> Dict[str, Dict[str, Any]]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT key, value_json FROM kv_documents WHERE key LIKE ? ESCAPE '\\' ORDER BY key ASC;",
                    (_escape_like(prefix) + "%",),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite scan failed for {prefix!r}: {exc}") from exc
        out: Dict[str, Dict[str, Any]] = {}
        for r in rows:
            doc = decode_doc(r["value_json"], key=r["key"])
            if doc is not None:
                out[str(r["key"])] = doc
        return out

    def delete_prefix(self, prefix: str) -> int:
        pattern = _escape_like(prefix) + "%"
        try:
            with self.transaction() as cur:
                cur.execute("DELETE FROM kv_documents WHERE key LIKE ? ESCAPE '\\';", (pattern,))
                n = cur.rowcount
                cur.execute("DELETE FROM kv_members WHERE set_key LIKE ? ESCAPE '\\';", (pattern,))
                return int(n)
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite delete_prefix failed for {prefix!r}: {exc}") from exc

    def replace_prefixes(self, prefixes: Sequence[str], docs: Mapping[str, Dict[str, Any]]) -> int:
        encoded = {str(k): encode_doc(v) for k, v in docs.items()}
        now = clock.now_iso()
        try:
            with self.transaction() as cur:
                n = 0
                for prefix in prefixes:
                    cur.execute(
                        "DELETE FROM kv_documents WHERE key LIKE ? ESCAPE '\\';",
                        (_escape_like(prefix) + "%",),
                    )
                    n += cur.rowcount
                for key, value in encoded.items():
                    self._write(cur, key, value, now)
                return n
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite replace_prefixes failed for {list(prefixes)!r}: {exc}") from exc

    # ------------------------
    # Presence sets
    # ------------------------

    def touch_member(self, set_key: str, member: str, ts_ms: int) -> None:
        try:
            with self.transaction() as cur:
                cur.execute(
                    """
                    INSERT INTO kv_members(set_key, member, seen_ms) VALUES (?, ?, ?)
                    ON CONFLICT(set_key, member) DO UPDATE SET seen_ms=excluded.seen_ms;
                    """,
                    (str(set_key), str(member), int(ts_ms)),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite touch_member failed for {set_key!r}: {exc}") from exc

    def remove_member(self, set_key: str, member: str) -> None:
        try:
            with self.transaction() as cur:
                cur.execute(
                    "DELETE FROM kv_members WHERE set_key=? AND member=?;",
                    (str(set_key), str(member)),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite remove_member failed for {set_key!r}: {exc}") from exc

    def count_members(self, set_key: str, min_ts_ms: int) -> int:
        try:
            with self.transaction() as cur:
                cur.execute(
                    "DELETE FROM kv_members WHERE set_key=? AND seen_ms < ?;",
                    (str(set_key), int(min_ts_ms)),
                )
                row = cur.execute(
                    "SELECT COUNT(*) AS c FROM kv_members WHERE set_key=?;", (str(set_key),)
                ).fetchone()
                return int(row["c"] if row else 0)
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite count_members failed for {set_key!r}: {exc}") from exc

    def clear_members(self, set_key: str) -> None:
        try:
            with self.transaction() as cur:
                cur.execute("DELETE FROM kv_members WHERE set_key=?;", (str(set_key),))
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite clear_members failed for {set_key!r}: {exc}") from exc
