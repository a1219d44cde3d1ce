"""
Proof Verifier.

State proofs bind a (key, claim) pair to a committed state root. The claim
is either a value (membership) or an explicit absence marker. The leaf
encoding is:

    present: 0x01 || u32le(len(key)) || key || sha256(value)
    absent:  0x00 || u32le(len(key)) || key

The leaf is folded bottom-up with the proof's sibling hashes using the
domain-separated tree of `lightclient.hashing`; every step says whether its
sibling sits on the left or the right.

`StateTree` builds roots and proofs over sorted keys (duplicating the last
node of an odd level) for hosts, tooling and tests.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional

from .config import LightClientConfig, get_config
from .errors import ClientFrozen, ExpiredConsensusState, LimitExceeded, ProofMismatch
from .hashing import fold_path, leaf_hash, node_hash, sha256
from .types import ClientState, ConsensusState, Proof, ProofStep, SiblingPosition

PRESENT = b"\x01"
ABSENT = b"\x00"


def encode_leaf(key: bytes, value: Optional[bytes]) -> bytes:
    """Leaf bytes for `key`; `value=None` encodes an absence claim."""
    body = len(key).to_bytes(4, "little") + key
    if value is None:
        return ABSENT + body
    return PRESENT + body + sha256(value)


def commitment_key(prefix: bytes, path: str) -> bytes:
    """Key under which the counterparty commits `path` (store prefix joined by '/')."""
    return prefix.rstrip(b"/") + b"/" + path.lstrip("/").encode("utf-8")


def compute_root(proof: Proof) -> bytes:
    return fold_path(proof.leaf, ((s.hash, int(s.position)) for s in proof.steps))


def verify_proof(
    root: bytes,
    proof: Proof,
    key: bytes,
    value: Optional[bytes],
    *,
    max_depth: Optional[int] = None,
) -> None:
    """Raise ProofMismatch unless `proof` shows (key, value-or-absence) under `root`."""
    if max_depth is not None and proof.depth > max_depth:
        raise LimitExceeded("proof_depth", max_depth, proof.depth)
    claim = "absence" if value is None else "membership"
    if proof.leaf != encode_leaf(key, value):
        raise ProofMismatch("proof leaf does not encode the claimed key and value", claim=claim)
    got = compute_root(proof)
    if got != root:
        raise ProofMismatch(claim=claim, expected=root, got=got)


def verify_against(
    client_state: ClientState,
    consensus_state: ConsensusState,
    proof: Proof,
    key: bytes,
    value: Optional[bytes],
    *,
    now: int,
    config: Optional[LightClientConfig] = None,
) -> None:
    """
    Full precondition chain: not frozen, not expired, within depth limit,
    then the hash fold against the consensus state's root.
    """
    cfg = config or get_config()
    if client_state.is_frozen:
        raise ClientFrozen(client_state.frozen_height)
    if consensus_state.is_expired(now, client_state.trusting_period):
        raise ExpiredConsensusState(
            timestamp=consensus_state.timestamp,
            now=now,
            trusting_period=client_state.trusting_period,
        )
    verify_proof(consensus_state.state_root, proof, key, value, max_depth=cfg.limits.max_proof_depth)


class StateTree:
    """Binary tree over sorted keys; `None` values are explicit absence leaves."""

    def __init__(self, entries: Mapping[bytes, Optional[bytes]]) -> None:
        self._keys: List[bytes] = sorted(entries)
        self._index: Dict[bytes, int] = {k: i for i, k in enumerate(self._keys)}
        self._leaves: List[bytes] = [encode_leaf(k, entries[k]) for k in self._keys]
        self._levels: List[List[bytes]] = self._build([leaf_hash(x) for x in self._leaves])

    @staticmethod
    def _build(layer: List[bytes]) -> List[List[bytes]]:
        if not layer:
            return [[leaf_hash(b"")]]
        levels = [layer]
        while len(layer) > 1:
            if len(layer) % 2:
                layer = layer + [layer[-1]]
            layer = [node_hash(layer[i], layer[i + 1]) for i in range(0, len(layer), 2)]
            levels.append(layer)
        return levels

    @property
    def root(self) -> bytes:
        return self._levels[-1][0]

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def prove(self, key: bytes) -> Proof:
        """Proof for the leaf stored under `key` (value or absence marker)."""
        idx = self._index[key]
        steps: List[ProofStep] = []
        for layer in self._levels[:-1]:
            if idx % 2:
                steps.append(ProofStep(layer[idx - 1], SiblingPosition.LEFT))
            else:
                sibling = layer[idx + 1] if idx + 1 < len(layer) else layer[idx]
                steps.append(ProofStep(sibling, SiblingPosition.RIGHT))
            idx //= 2
        return Proof(self._leaves[self._index[key]], tuple(steps))


__all__ = [
    "encode_leaf",
    "commitment_key",
    "compute_root",
    "verify_proof",
    "verify_against",
    "StateTree",
]
