"""
SQLite storage backend.

One connection in autocommit mode holds a single `entries` table of raw
byte keys and values. Standalone puts and deletes commit on their own; a
batch wraps its writes in `BEGIN IMMEDIATE ... COMMIT` and keeps the
connection lock for its whole lifetime, so no other thread interleaves.
"""

from __future__ import annotations

import os
import sqlite3
import threading
from typing import Iterator, Mapping, Optional, Tuple, Union

from .kv import Batch

PathLike = Union[str, "os.PathLike[str]"]

FILE_PRAGMAS: Mapping[str, str] = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "temp_store": "MEMORY",
}

_SCHEMA = "CREATE TABLE IF NOT EXISTS entries (key BLOB PRIMARY KEY, value BLOB NOT NULL) WITHOUT ROWID"
_UPSERT = "INSERT INTO entries(key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value = excluded.value"
_REMOVE = "DELETE FROM entries WHERE key = ?"
_SELECT = "SELECT value FROM entries WHERE key = ?"
_RANGE = "SELECT key, value FROM entries WHERE key >= ? AND key < ? ORDER BY key"
_TAIL = "SELECT key, value FROM entries WHERE key >= ? ORDER BY key"


def _prefix_hi(prefix: bytes) -> Optional[bytes]:
    """Exclusive upper bound of the keys sharing `prefix`; None if unbounded."""
    stripped = prefix.rstrip(b"\xff")
    if not stripped:
        return None
    return stripped[:-1] + bytes([stripped[-1] + 1])


class SQLiteBatch:
    def __init__(self, kv: "SQLiteKV") -> None:
        self._kv = kv
        self._active = False

    def __enter__(self) -> "SQLiteBatch":
        if self._active:
            raise RuntimeError("batch is already in progress")
        self._kv._lock.acquire()
        try:
            self._kv._conn.execute("BEGIN IMMEDIATE")
        except BaseException:
            self._kv._lock.release()
            raise
        self._active = True
        return self

    def _exec(self, sql: str, *args: bytes) -> None:
        if not self._active:
            raise RuntimeError("batch used outside its with-block")
        self._kv._conn.execute(sql, args)

    def put(self, key: bytes, value: bytes) -> None:
        self._exec(_UPSERT, bytes(key), bytes(value))

    def delete(self, key: bytes) -> None:
        self._exec(_REMOVE, bytes(key))

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        try:
            self._kv._conn.execute("ROLLBACK" if exc_type is not None else "COMMIT")
        finally:
            self._active = False
            self._kv._lock.release()
        return None


class SQLiteKV:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.RLock()

    def _query(self, sql: str, *args: bytes) -> list:
        with self._lock:
            return self._conn.execute(sql, args).fetchall()

    def get(self, key: bytes) -> Optional[bytes]:
        rows = self._query(_SELECT, bytes(key))
        return bytes(rows[0][0]) if rows else None

    def has(self, key: bytes) -> bool:
        return self.get(key) is not None

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        hi = _prefix_hi(prefix)
        rows = self._query(_TAIL, prefix) if hi is None else self._query(_RANGE, prefix, hi)
        return ((bytes(k), bytes(v)) for k, v in rows)

    def put(self, key: bytes, value: bytes) -> None:
        with self._lock:
            self._conn.execute(_UPSERT, (bytes(key), bytes(value)))

    def delete(self, key: bytes) -> None:
        with self._lock:
            self._conn.execute(_REMOVE, (bytes(key),))

    def batch(self) -> Batch:
        return SQLiteBatch(self)

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def open_sqlite_kv(path: PathLike, *, pragmas: Optional[Mapping[str, str]] = None) -> SQLiteKV:
    """
    Open or create the database at `path`. ":memory:" gives a private
    in-memory database; file pragmas are skipped for it.
    """
    target = os.fspath(path)
    conn = sqlite3.connect(target, isolation_level=None, check_same_thread=False)
    if target != ":memory:":
        for name, value in {**FILE_PRAGMAS, **(pragmas or {})}.items():
            conn.execute(f"PRAGMA {name}={value}")
    conn.execute(_SCHEMA)
    return SQLiteKV(conn)


__all__ = ["SQLiteKV", "SQLiteBatch", "open_sqlite_kv"]
