"""
Validator Set Model.

A `ValidatorSet` is one epoch's stake-weighted block-producer roster. It is
immutable: rotation yields a new value, and `EpochChain` links the rosters
by epoch id as an immutable snapshot chain.

The commitment of a set is sha256 over its compact encoding
(`Vec<ValidatorStake>`), which is what the chain records as `next_bp_hash`
one epoch ahead. Entry order matters; the same members in a different order
commit to a different hash.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple

from .codec import borsh
from .codec.borsh import Reader, Writer
from .codec.cbor import as_bytes, as_int, as_list, as_str, fields
from .crypto import PublicKey, Signature, verify_signature
from .errors import DecodeError, EpochMismatch
from .hashing import HASH_LEN, sha256

# ValidatorStakeView version tag on the source chain.
_STAKE_VIEW_V1 = 0

_U128_MAX = (1 << 128) - 1


@dataclass(frozen=True)
class ValidatorStake:
    account_id: str
    public_key: PublicKey
    stake: int

    def __post_init__(self) -> None:
        if not self.account_id:
            raise ValueError("account_id must be non-empty")
        if not isinstance(self.stake, int) or isinstance(self.stake, bool) or not (0 <= self.stake <= _U128_MAX):
            raise ValueError(f"stake must be a u128, got {self.stake!r}")

    def verify(self, message: bytes, signature: Signature) -> None:
        verify_signature(signature, message, self.public_key)

    def write(self, w: Writer) -> None:
        w.u8(_STAKE_VIEW_V1)
        w.string(self.account_id)
        self.public_key.write(w)
        w.u128(self.stake)

    @classmethod
    def read(cls, r: Reader) -> "ValidatorStake":
        version = r.u8()
        if version != _STAKE_VIEW_V1:
            raise DecodeError("unsupported validator stake view", version=version)
        account_id = r.string()
        public_key = PublicKey.read(r)
        return cls(account_id, public_key, r.u128())

    def to_obj(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "public_key": self.public_key.to_obj(),
            "stake": self.stake,
        }

    @classmethod
    def from_obj(cls, obj: Any) -> "ValidatorStake":
        account_id, public_key, stake = fields(obj, ("account_id", "public_key", "stake"), where="validator")
        return cls(as_str(account_id, "account_id"), PublicKey.from_obj(public_key), as_int(stake, "stake"))


def write_stakes(w: Writer, stakes: Iterable[ValidatorStake]) -> None:
    w.seq(tuple(stakes), lambda v: v.write(w))


def read_stakes(r: Reader) -> Tuple[ValidatorStake, ...]:
    return tuple(r.seq(lambda: ValidatorStake.read(r)))


def stakes_commitment(stakes: Iterable[ValidatorStake]) -> bytes:
    """sha256 of the compact encoding of an ordered validator list."""
    w = Writer()
    write_stakes(w, stakes)
    return sha256(w.getvalue())


@dataclass(frozen=True)
class ValidatorSet:
    """
    Immutable roster for one epoch.

    Raises ValueError on construction when the roster is empty or carries no
    stake, since no header could ever reach a supermajority against it.
    """

    validators: Tuple[ValidatorStake, ...]
    _commitment: bytes = field(init=False, repr=False, compare=False)
    _total: int = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        entries = tuple(self.validators)
        if not entries:
            raise ValueError("validator set must not be empty")
        total = sum(v.stake for v in entries)
        if total <= 0:
            raise ValueError("validator set must carry stake")
        object.__setattr__(self, "validators", entries)
        object.__setattr__(self, "_total", total)
        object.__setattr__(self, "_commitment", stakes_commitment(entries))

    @property
    def total_stake(self) -> int:
        return self._total

    def commitment(self) -> bytes:
        return self._commitment

    def __len__(self) -> int:
        return len(self.validators)

    def __iter__(self) -> Iterator[ValidatorStake]:
        return iter(self.validators)

    def __getitem__(self, index: int) -> ValidatorStake:
        return self.validators[index]

    def verify(self, index: int, message: bytes, signature: Signature) -> int:
        """Verify the entry at `index`; return its stake or raise InvalidSignature."""
        entry = self.validators[index]
        entry.verify(message, signature)
        return entry.stake

    # ---- encoding ----

    def write(self, w: Writer) -> None:
        write_stakes(w, self.validators)

    @classmethod
    def read(cls, r: Reader) -> "ValidatorSet":
        return cls(read_stakes(r))

    def to_bytes(self) -> bytes:
        return borsh.encode(self)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ValidatorSet":
        return borsh.decode(cls, data)

    def to_obj(self) -> Dict[str, Any]:
        return {"validators": [v.to_obj() for v in self.validators]}

    @classmethod
    def from_obj(cls, obj: Any) -> "ValidatorSet":
        (validators,) = fields(obj, ("validators",), where="validator_set")
        return cls(tuple(ValidatorStake.from_obj(v) for v in as_list(validators, "validators")))


@dataclass(frozen=True)
class EpochChain:
    """
    Immutable epoch_id → ValidatorSet snapshot chain.

    `extend` returns a new chain; an epoch can only ever be bound to one set.
    """

    epochs: Mapping[bytes, ValidatorSet] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for epoch_id in self.epochs:
            if len(epoch_id) != HASH_LEN:
                raise ValueError("epoch ids are 32-byte hashes")
        object.__setattr__(self, "epochs", MappingProxyType(dict(self.epochs)))

    def get(self, epoch_id: bytes) -> Optional[ValidatorSet]:
        return self.epochs.get(epoch_id)

    def __contains__(self, epoch_id: object) -> bool:
        return epoch_id in self.epochs

    def __len__(self) -> int:
        return len(self.epochs)

    def extend(self, epoch_id: bytes, validators: ValidatorSet) -> "EpochChain":
        known = self.epochs.get(epoch_id)
        if known is not None:
            if known.commitment() != validators.commitment():
                raise EpochMismatch(
                    "epoch already bound to a different validator set",
                    epoch_id=epoch_id,
                    known=known.commitment(),
                    got=validators.commitment(),
                )
            return self
        return EpochChain({**self.epochs, epoch_id: validators})


__all__ = [
    "ValidatorStake",
    "ValidatorSet",
    "EpochChain",
    "stakes_commitment",
    "write_stakes",
    "read_stakes",
]
