"""
Host storage contract and the light client's key layout.

Every record a client owns lives under

    <tag> "/" <len(client_id):u8> <client_id> <suffix>

with one tag per record family:

    CLIENTS     b"c"   suffix empty                 -> ClientState
    CONSENSUS   b"s"   suffix = u64be rev ‖ u64be h  -> ConsensusState
    EPOCHS      b"e"   suffix = 32-byte epoch id     -> ValidatorSet

Suffixes are fixed width, so a prefix scan over one client's consensus
states yields them in ascending height order and never strays into a
client whose id merely starts with the same characters.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator, Optional, Protocol, Tuple, runtime_checkable

from ..types import Height

_HEIGHT = struct.Struct(">QQ")


@dataclass(frozen=True)
class Keyspace:
    tag: bytes

    def __post_init__(self) -> None:
        if not self.tag or b"/" in self.tag:
            raise ValueError(f"bad keyspace tag {self.tag!r}")

    def prefix(self, client_id: str) -> bytes:
        """Scan prefix covering every record of `client_id` in this keyspace."""
        cid = client_id.encode("utf-8")
        if not 0 < len(cid) < 256:
            raise ValueError("client id must be 1..255 bytes")
        return self.tag + b"/" + bytes([len(cid)]) + cid

    def key(self, client_id: str, suffix: bytes = b"") -> bytes:
        return self.prefix(client_id) + bytes(suffix)


def height_suffix(height: Height) -> bytes:
    return _HEIGHT.pack(height.revision_number, height.revision_height)


def height_from_suffix(suffix: bytes) -> Height:
    rn, rh = _HEIGHT.unpack(suffix)
    return Height(rn, rh)


CLIENTS = Keyspace(b"c")
CONSENSUS = Keyspace(b"s")
EPOCHS = Keyspace(b"e")


# ---- storage protocols ----


@runtime_checkable
class ReadOnlyKV(Protocol):
    def get(self, key: bytes) -> Optional[bytes]: ...
    def has(self, key: bytes) -> bool: ...

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """Yield (key, value) for keys starting with `prefix`, lowest key first."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class Batch(Protocol):
    """
    Staged writes, used as `with kv.batch() as b:`. A clean exit applies
    all of them at once; an exception leaving the block discards them.
    """

    def put(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def __enter__(self) -> "Batch": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class KV(ReadOnlyKV, Protocol):
    def put(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def batch(self) -> Batch: ...


__all__ = [
    "ReadOnlyKV",
    "KV",
    "Batch",
    "Keyspace",
    "CLIENTS",
    "CONSENSUS",
    "EPOCHS",
    "height_suffix",
    "height_from_suffix",
]
