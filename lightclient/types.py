"""
Value types exchanged with the host and the relayer.

Every type is a frozen dataclass and supports both wire forms:

- compact: `write(w)` / `read(r)` (see lightclient.codec.borsh), exposed as
  `to_bytes()` / `from_bytes()`
- tagged:  `to_obj()` / `from_obj()` field maps wrapped in a typed envelope
  (see lightclient.codec.cbor), exposed as `to_cbor()` / `from_cbor()`

`pretty()` returns a JSON-friendly view for logs and tooling only.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple

from .codec import borsh, cbor, to_json
from .codec.borsh import Reader, Writer
from .codec.cbor import as_bytes, as_int, as_list, as_str, fields
from .crypto import Signature
from .errors import DecodeError
from .hashing import HASH_LEN, combine_hash, sha256
from .validators import ValidatorSet, ValidatorStake, read_stakes, write_stakes

# The source chain never changes revision; epochs are tracked by epoch id.
REVISION_NUMBER = 0

_U64_MAX = (1 << 64) - 1


def _check_u64(name: str, v: int) -> None:
    if not isinstance(v, int) or isinstance(v, bool) or not (0 <= v <= _U64_MAX):
        raise ValueError(f"{name} must be a u64, got {v!r}")


def _check_hashes(obj: Any, *names: str) -> None:
    for n in names:
        v = getattr(obj, n)
        if not isinstance(v, bytes) or len(v) != HASH_LEN:
            raise ValueError(f"{n} must be {HASH_LEN} bytes")


class _Codec:
    """Shared wire-form conveniences; subclasses provide write/read/to_obj/from_obj."""

    def to_bytes(self) -> bytes:
        return borsh.encode(self)

    @classmethod
    def from_bytes(cls, data: bytes):
        return borsh.decode(cls, data)

    def to_cbor(self) -> bytes:
        return cbor.encode(self)

    @classmethod
    def from_cbor(cls, data: bytes):
        return cbor.decode(data, expected=cls)

    def pretty(self) -> Dict[str, Any]:
        return to_json(self.to_obj())  # type: ignore[attr-defined]


class Status(str, Enum):
    ACTIVE = "Active"
    FROZEN = "Frozen"
    EXPIRED = "Expired"


# ---- Height ----


@cbor.register("Height")
@dataclass(frozen=True, order=True)
class Height(_Codec):
    revision_number: int
    revision_height: int

    def __post_init__(self) -> None:
        _check_u64("revision_number", self.revision_number)
        _check_u64("revision_height", self.revision_height)

    @classmethod
    def at(cls, block_height: int) -> "Height":
        return cls(REVISION_NUMBER, block_height)

    def write(self, w: Writer) -> None:
        w.u64(self.revision_number)
        w.u64(self.revision_height)

    @classmethod
    def read(cls, r: Reader) -> "Height":
        return cls(r.u64(), r.u64())

    def to_obj(self) -> Dict[str, Any]:
        return {"revision_number": self.revision_number, "revision_height": self.revision_height}

    @classmethod
    def from_obj(cls, obj: Any) -> "Height":
        rn, rh = fields(obj, ("revision_number", "revision_height"), where="height")
        return cls(as_int(rn, "revision_number"), as_int(rh, "revision_height"))

    def __str__(self) -> str:
        return f"{self.revision_number}-{self.revision_height}"


# ---- ClientState ----


@cbor.register("ClientState")
@dataclass(frozen=True)
class ClientState(_Codec):
    """
    Scalar client fields. Durations and timestamps are nanoseconds.

    frozen_height is set once, by proven misbehaviour, and never cleared.
    """

    latest_height: Height
    latest_timestamp: int
    trusting_period: int
    max_clock_drift: int
    frozen_height: Optional[Height] = None

    def __post_init__(self) -> None:
        _check_u64("latest_timestamp", self.latest_timestamp)
        _check_u64("trusting_period", self.trusting_period)
        _check_u64("max_clock_drift", self.max_clock_drift)
        if self.trusting_period == 0:
            raise ValueError("trusting_period must be positive")

    @property
    def is_frozen(self) -> bool:
        return self.frozen_height is not None

    def advanced(self, height: Height, timestamp: int) -> "ClientState":
        return replace(self, latest_height=height, latest_timestamp=timestamp)

    def frozen(self, height: Height) -> "ClientState":
        return replace(self, frozen_height=height)

    def write(self, w: Writer) -> None:
        self.latest_height.write(w)
        w.u64(self.latest_timestamp)
        w.u64(self.trusting_period)
        w.u64(self.max_clock_drift)
        w.option(self.frozen_height, lambda h: h.write(w))

    @classmethod
    def read(cls, r: Reader) -> "ClientState":
        return cls(
            latest_height=Height.read(r),
            latest_timestamp=r.u64(),
            trusting_period=r.u64(),
            max_clock_drift=r.u64(),
            frozen_height=r.option(lambda: Height.read(r)),
        )

    def to_obj(self) -> Dict[str, Any]:
        return {
            "latest_height": self.latest_height.to_obj(),
            "latest_timestamp": self.latest_timestamp,
            "trusting_period": self.trusting_period,
            "max_clock_drift": self.max_clock_drift,
            "frozen_height": None if self.frozen_height is None else self.frozen_height.to_obj(),
        }

    @classmethod
    def from_obj(cls, obj: Any) -> "ClientState":
        lh, lts, tp, mcd, fh = fields(
            obj,
            ("latest_height", "latest_timestamp", "trusting_period", "max_clock_drift", "frozen_height"),
            where="client_state",
        )
        return cls(
            latest_height=Height.from_obj(lh),
            latest_timestamp=as_int(lts, "latest_timestamp"),
            trusting_period=as_int(tp, "trusting_period"),
            max_clock_drift=as_int(mcd, "max_clock_drift"),
            frozen_height=None if fh is None else Height.from_obj(fh),
        )


# ---- ConsensusState ----


@cbor.register("ConsensusState")
@dataclass(frozen=True)
class ConsensusState(_Codec):
    """
    Trusted snapshot produced by one accepted header.

    next_bp_hash commits to the validator set of the epoch after epoch_id.
    """

    timestamp: int
    state_root: bytes
    epoch_id: bytes
    next_epoch_id: bytes
    next_bp_hash: bytes
    block_hash: bytes

    def __post_init__(self) -> None:
        _check_u64("timestamp", self.timestamp)
        _check_hashes(self, "state_root", "epoch_id", "next_epoch_id", "next_bp_hash", "block_hash")

    def is_expired(self, now: int, trusting_period: int) -> bool:
        # a timestamp ahead of `now` is not expired
        return now - self.timestamp > trusting_period

    def write(self, w: Writer) -> None:
        w.u64(self.timestamp)
        for h in (self.state_root, self.epoch_id, self.next_epoch_id, self.next_bp_hash, self.block_hash):
            w.fixed(h, HASH_LEN)

    @classmethod
    def read(cls, r: Reader) -> "ConsensusState":
        ts = r.u64()
        state_root, epoch_id, next_epoch_id, next_bp_hash, block_hash = (r.fixed(HASH_LEN) for _ in range(5))
        return cls(ts, state_root, epoch_id, next_epoch_id, next_bp_hash, block_hash)

    def to_obj(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "state_root": self.state_root,
            "epoch_id": self.epoch_id,
            "next_epoch_id": self.next_epoch_id,
            "next_bp_hash": self.next_bp_hash,
            "block_hash": self.block_hash,
        }

    @classmethod
    def from_obj(cls, obj: Any) -> "ConsensusState":
        names = ("timestamp", "state_root", "epoch_id", "next_epoch_id", "next_bp_hash", "block_hash")
        ts, *hashes = fields(obj, names, where="consensus_state")
        return cls(as_int(ts, "timestamp"), *(as_bytes(h, n, HASH_LEN) for h, n in zip(hashes, names[1:])))


# ---- Header ----


@dataclass(frozen=True)
class BlockHeaderInnerLite(_Codec):
    height: int
    epoch_id: bytes
    next_epoch_id: bytes
    prev_state_root: bytes
    outcome_root: bytes
    timestamp: int
    next_bp_hash: bytes
    block_merkle_root: bytes

    _HASHES = ("epoch_id", "next_epoch_id", "prev_state_root", "outcome_root")

    def __post_init__(self) -> None:
        _check_u64("height", self.height)
        _check_u64("timestamp", self.timestamp)
        _check_hashes(self, *self._HASHES, "next_bp_hash", "block_merkle_root")

    def hash(self) -> bytes:
        return sha256(self.to_bytes())

    def write(self, w: Writer) -> None:
        w.u64(self.height)
        for n in self._HASHES:
            w.fixed(getattr(self, n), HASH_LEN)
        w.u64(self.timestamp)
        w.fixed(self.next_bp_hash, HASH_LEN)
        w.fixed(self.block_merkle_root, HASH_LEN)

    @classmethod
    def read(cls, r: Reader) -> "BlockHeaderInnerLite":
        height = r.u64()
        epoch_id, next_epoch_id, prev_state_root, outcome_root = (r.fixed(HASH_LEN) for _ in range(4))
        return cls(height, epoch_id, next_epoch_id, prev_state_root, outcome_root, r.u64(), r.fixed(HASH_LEN), r.fixed(HASH_LEN))

    def to_obj(self) -> Dict[str, Any]:
        return {
            "height": self.height,
            "epoch_id": self.epoch_id,
            "next_epoch_id": self.next_epoch_id,
            "prev_state_root": self.prev_state_root,
            "outcome_root": self.outcome_root,
            "timestamp": self.timestamp,
            "next_bp_hash": self.next_bp_hash,
            "block_merkle_root": self.block_merkle_root,
        }

    @classmethod
    def from_obj(cls, obj: Any) -> "BlockHeaderInnerLite":
        (height, epoch_id, next_epoch_id, prev_state_root, outcome_root, ts, next_bp_hash, bmr) = fields(
            obj,
            (
                "height",
                "epoch_id",
                "next_epoch_id",
                "prev_state_root",
                "outcome_root",
                "timestamp",
                "next_bp_hash",
                "block_merkle_root",
            ),
            where="inner_lite",
        )
        return cls(
            as_int(height, "height"),
            as_bytes(epoch_id, "epoch_id", HASH_LEN),
            as_bytes(next_epoch_id, "next_epoch_id", HASH_LEN),
            as_bytes(prev_state_root, "prev_state_root", HASH_LEN),
            as_bytes(outcome_root, "outcome_root", HASH_LEN),
            as_int(ts, "timestamp"),
            as_bytes(next_bp_hash, "next_bp_hash", HASH_LEN),
            as_bytes(bmr, "block_merkle_root", HASH_LEN),
        )


@cbor.register("Header")
@dataclass(frozen=True)
class Header(_Codec):
    """
    Untrusted light-client block header submitted by a relayer.

    `validators` is the roster of the header's own epoch and is only needed
    when the header is the first one accepted from that epoch.
    `approvals_after_next` holds one optional signature per roster position.
    """

    prev_block_hash: bytes
    next_block_inner_hash: bytes
    inner_lite: BlockHeaderInnerLite
    inner_rest_hash: bytes
    validators: Optional[Tuple[ValidatorStake, ...]]
    approvals_after_next: Tuple[Optional[Signature], ...]

    def __post_init__(self) -> None:
        _check_hashes(self, "prev_block_hash", "next_block_inner_hash", "inner_rest_hash")
        if self.validators is not None:
            object.__setattr__(self, "validators", tuple(self.validators))
        object.__setattr__(self, "approvals_after_next", tuple(self.approvals_after_next))

    # ---- accessors ----

    @property
    def height(self) -> Height:
        return Height.at(self.inner_lite.height)

    @property
    def timestamp(self) -> int:
        return self.inner_lite.timestamp

    @property
    def epoch_id(self) -> bytes:
        return self.inner_lite.epoch_id

    @property
    def state_root(self) -> bytes:
        return self.inner_lite.prev_state_root

    @property
    def next_bp_hash(self) -> bytes:
        return self.inner_lite.next_bp_hash

    def validator_set(self) -> Optional[ValidatorSet]:
        return None if self.validators is None else ValidatorSet(self.validators)

    # ---- block hashing ----

    def current_block_hash(self) -> bytes:
        return combine_hash(combine_hash(self.inner_lite.hash(), self.inner_rest_hash), self.prev_block_hash)

    def next_block_hash(self) -> bytes:
        return combine_hash(self.next_block_inner_hash, self.current_block_hash())

    def approval_message(self) -> bytes:
        """Bytes each block producer signs: an endorsement of height + 2."""
        return b"\x00" + self.next_block_hash() + (self.inner_lite.height + 2).to_bytes(8, "little")

    def to_consensus_state(self) -> ConsensusState:
        return ConsensusState(
            timestamp=self.timestamp,
            state_root=self.state_root,
            epoch_id=self.inner_lite.epoch_id,
            next_epoch_id=self.inner_lite.next_epoch_id,
            next_bp_hash=self.inner_lite.next_bp_hash,
            block_hash=self.current_block_hash(),
        )

    # ---- encoding ----

    def write(self, w: Writer) -> None:
        w.fixed(self.prev_block_hash, HASH_LEN)
        w.fixed(self.next_block_inner_hash, HASH_LEN)
        self.inner_lite.write(w)
        w.fixed(self.inner_rest_hash, HASH_LEN)
        w.option(self.validators, lambda vs: write_stakes(w, vs))
        w.seq(self.approvals_after_next, lambda s: w.option(s, lambda sig: sig.write(w)))

    @classmethod
    def read(cls, r: Reader) -> "Header":
        return cls(
            prev_block_hash=r.fixed(HASH_LEN),
            next_block_inner_hash=r.fixed(HASH_LEN),
            inner_lite=BlockHeaderInnerLite.read(r),
            inner_rest_hash=r.fixed(HASH_LEN),
            validators=r.option(lambda: read_stakes(r)),
            approvals_after_next=tuple(r.seq(lambda: r.option(lambda: Signature.read(r)))),
        )

    def to_obj(self) -> Dict[str, Any]:
        return {
            "prev_block_hash": self.prev_block_hash,
            "next_block_inner_hash": self.next_block_inner_hash,
            "inner_lite": self.inner_lite.to_obj(),
            "inner_rest_hash": self.inner_rest_hash,
            "validators": None if self.validators is None else [v.to_obj() for v in self.validators],
            "approvals_after_next": [None if s is None else s.to_obj() for s in self.approvals_after_next],
        }

    @classmethod
    def from_obj(cls, obj: Any) -> "Header":
        pbh, nbih, inner, irh, validators, approvals = fields(
            obj,
            (
                "prev_block_hash",
                "next_block_inner_hash",
                "inner_lite",
                "inner_rest_hash",
                "validators",
                "approvals_after_next",
            ),
            where="header",
        )
        return cls(
            prev_block_hash=as_bytes(pbh, "prev_block_hash", HASH_LEN),
            next_block_inner_hash=as_bytes(nbih, "next_block_inner_hash", HASH_LEN),
            inner_lite=BlockHeaderInnerLite.from_obj(inner),
            inner_rest_hash=as_bytes(irh, "inner_rest_hash", HASH_LEN),
            validators=None
            if validators is None
            else tuple(ValidatorStake.from_obj(v) for v in as_list(validators, "validators")),
            approvals_after_next=tuple(
                None if s is None else Signature.from_obj(s) for s in as_list(approvals, "approvals_after_next")
            ),
        )


# ---- Misbehaviour ----


@cbor.register("Misbehaviour")
@dataclass(frozen=True)
class Misbehaviour(_Codec):
    client_id: str
    trusted_height: Height
    header_1: Header
    header_2: Header

    def write(self, w: Writer) -> None:
        w.string(self.client_id)
        self.trusted_height.write(w)
        self.header_1.write(w)
        self.header_2.write(w)

    @classmethod
    def read(cls, r: Reader) -> "Misbehaviour":
        return cls(r.string(), Height.read(r), Header.read(r), Header.read(r))

    def to_obj(self) -> Dict[str, Any]:
        return {
            "client_id": self.client_id,
            "trusted_height": self.trusted_height.to_obj(),
            "header_1": self.header_1.to_obj(),
            "header_2": self.header_2.to_obj(),
        }

    @classmethod
    def from_obj(cls, obj: Any) -> "Misbehaviour":
        cid, th, h1, h2 = fields(obj, ("client_id", "trusted_height", "header_1", "header_2"), where="misbehaviour")
        return cls(as_str(cid, "client_id"), Height.from_obj(th), Header.from_obj(h1), Header.from_obj(h2))


# ---- Proof ----


class SiblingPosition(IntEnum):
    RIGHT = 0
    LEFT = 1


@dataclass(frozen=True)
class ProofStep:
    hash: bytes
    position: SiblingPosition

    def __post_init__(self) -> None:
        _check_hashes(self, "hash")
        object.__setattr__(self, "position", SiblingPosition(self.position))

    def write(self, w: Writer) -> None:
        w.fixed(self.hash, HASH_LEN)
        w.u8(int(self.position))

    @classmethod
    def read(cls, r: Reader) -> "ProofStep":
        h = r.fixed(HASH_LEN)
        pos = r.u8()
        if pos not in (0, 1):
            raise DecodeError("invalid sibling position", position=pos)
        return cls(h, SiblingPosition(pos))

    def to_obj(self) -> Dict[str, Any]:
        return {"hash": self.hash, "position": int(self.position)}

    @classmethod
    def from_obj(cls, obj: Any) -> "ProofStep":
        h, pos = fields(obj, ("hash", "position"), where="proof_step")
        pos = as_int(pos, "position")
        if pos not in (0, 1):
            raise DecodeError("invalid sibling position", position=pos)
        return cls(as_bytes(h, "hash", HASH_LEN), SiblingPosition(pos))


@cbor.register("Proof")
@dataclass(frozen=True)
class Proof(_Codec):
    """Leaf encoding of (key, claim) plus the bottom-up sibling path."""

    leaf: bytes
    steps: Tuple[ProofStep, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))

    @property
    def depth(self) -> int:
        return len(self.steps)

    def write(self, w: Writer) -> None:
        w.bytes_(self.leaf)
        w.seq(self.steps, lambda s: s.write(w))

    @classmethod
    def read(cls, r: Reader) -> "Proof":
        leaf = r.bytes_()
        return cls(leaf, tuple(r.seq(lambda: ProofStep.read(r))))

    def to_obj(self) -> Dict[str, Any]:
        return {"leaf": self.leaf, "steps": [s.to_obj() for s in self.steps]}

    @classmethod
    def from_obj(cls, obj: Any) -> "Proof":
        leaf, steps = fields(obj, ("leaf", "steps"), where="proof")
        return cls(as_bytes(leaf, "leaf"), tuple(ProofStep.from_obj(s) for s in as_list(steps, "steps")))


__all__ = [
    "REVISION_NUMBER",
    "Status",
    "Height",
    "ClientState",
    "ConsensusState",
    "BlockHeaderInnerLite",
    "Header",
    "Misbehaviour",
    "SiblingPosition",
    "ProofStep",
    "Proof",
]
