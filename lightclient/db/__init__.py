"""
Storage backends for the light client.

    open_kv("memory://")                 -> MemoryKV
    open_kv("sqlite:///var/lc/lc.db")    -> SQLiteKV
    open_kv("/var/lc/lc.db")             -> SQLiteKV
"""

from __future__ import annotations

from .kv import KV, Batch, ReadOnlyKV
from .memory import MemoryKV
from .sqlite import SQLiteKV, open_sqlite_kv


def open_kv(uri: str) -> KV:
    if uri in ("memory://", "mem://", ""):
        return MemoryKV()
    if uri.startswith("sqlite://"):
        path = uri[len("sqlite://"):]
        # sqlite:///abs/path keeps its leading slash
        return open_sqlite_kv(path or ":memory:")
    if "://" in uri:
        raise ValueError(f"unsupported storage uri {uri!r}")
    return open_sqlite_kv(uri)


__all__ = ["KV", "Batch", "ReadOnlyKV", "MemoryKV", "SQLiteKV", "open_kv", "open_sqlite_kv"]
