"""
Dict-backed storage backend for tests and ephemeral clients.

Batch writes are staged locally and applied in one locked step when the
with-block exits cleanly; readers never see part of a batch.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterator, List, Optional, Tuple

from .kv import Batch

_Op = Tuple[bytes, Optional[bytes]]  # value None means delete


class MemoryBatch:
    def __init__(self, kv: "MemoryKV") -> None:
        self._kv = kv
        self._staged: Optional[List[_Op]] = None

    def __enter__(self) -> "MemoryBatch":
        if self._staged is not None:
            raise RuntimeError("batch is already in progress")
        self._staged = []
        return self

    def _stage(self, op: _Op) -> None:
        if self._staged is None:
            raise RuntimeError("batch used outside its with-block")
        self._staged.append(op)

    def put(self, key: bytes, value: bytes) -> None:
        self._stage((bytes(key), bytes(value)))

    def delete(self, key: bytes) -> None:
        self._stage((bytes(key), None))

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        staged, self._staged = self._staged or [], None
        if exc_type is None:
            self._kv._apply(staged)
        return None


class MemoryKV:
    def __init__(self) -> None:
        self._data: Dict[bytes, bytes] = {}
        self._lock = threading.RLock()

    def get(self, key: bytes) -> Optional[bytes]:
        with self._lock:
            return self._data.get(bytes(key))

    def has(self, key: bytes) -> bool:
        return self.get(key) is not None

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        with self._lock:
            hits = [(k, v) for k, v in self._data.items() if k.startswith(prefix)]
        hits.sort()
        return iter(hits)

    def put(self, key: bytes, value: bytes) -> None:
        self._apply([(bytes(key), bytes(value))])

    def delete(self, key: bytes) -> None:
        self._apply([(bytes(key), None)])

    def batch(self) -> Batch:
        return MemoryBatch(self)

    def close(self) -> None:
        with self._lock:
            self._data.clear()

    def _apply(self, ops: List[_Op]) -> None:
        with self._lock:
            for key, value in ops:
                if value is None:
                    self._data.pop(key, None)
                else:
                    self._data[key] = value


__all__ = ["MemoryKV", "MemoryBatch"]
