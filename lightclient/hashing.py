"""
lightclient.hashing
===================

SHA-256 helpers shared by the verifier and the proof checker.

Block hashing follows the source chain:
- combine_hash(a, b) = sha256(a || b)

State proofs use a domain-separated tree instead, so a leaf can never be
confused with an interior node:
    LEAF = sha256(0x00 || leaf_bytes)
    NODE = sha256(0x01 || left || right)
"""

from __future__ import annotations

import hashlib
from typing import Iterable, Tuple, Union

ZERO32 = b"\x00" * 32
HASH_LEN = 32

BytesLike = Union[bytes, bytearray, memoryview]


def sha256(data: BytesLike) -> bytes:
    return hashlib.sha256(bytes(data)).digest()


def combine_hash(a: bytes, b: bytes) -> bytes:
    return sha256(a + b)


# ------------
# Domain-separated tree (state proofs)
# ------------

_LEAF_TAG = b"\x00"
_NODE_TAG = b"\x01"


def leaf_hash(leaf: BytesLike) -> bytes:
    return sha256(_LEAF_TAG + bytes(leaf))


def node_hash(left: bytes, right: bytes) -> bytes:
    return sha256(_NODE_TAG + left + right)


def fold_path(leaf: BytesLike, path: Iterable[Tuple[bytes, int]]) -> bytes:
    """
    Recompute a root from `leaf` and a bottom-up sibling path.

    position 1 → sibling on the LEFT, 0 → sibling on the RIGHT.
    """
    h = leaf_hash(leaf)
    for sibling, position in path:
        if position == 1:
            h = node_hash(sibling, h)
        elif position == 0:
            h = node_hash(h, sibling)
        else:
            raise ValueError(f"invalid sibling position {position!r}")
    return h


__all__ = [
    "ZERO32",
    "HASH_LEN",
    "sha256",
    "combine_hash",
    "leaf_hash",
    "node_hash",
    "fold_path",
]
