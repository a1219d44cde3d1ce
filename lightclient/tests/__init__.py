"""
Test-suite helpers for the lightclient package.

Signing keys are derived deterministically from account ids so that every
run builds the same rosters, headers and commitments.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Tuple

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from lightclient.config import NANOS_PER_SECOND
from lightclient.crypto import KeyType, PublicKey, Signature
from lightclient.hashing import sha256
from lightclient.types import BlockHeaderInnerLite, ClientState, ConsensusState, Header, Height
from lightclient.validators import ValidatorSet, ValidatorStake
from lightclient.verifier import TrustedSnapshot

SECOND = NANOS_PER_SECOND
DAY = 86400 * SECOND
T0 = 1_700_000_000 * SECOND
GENESIS_HEIGHT = 100
TRUSTING_PERIOD = 14 * DAY
MAX_CLOCK_DRIFT = DAY
CLIENT_ID = "near-0"

_SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def h32(tag: str) -> bytes:
    return sha256(tag.encode("utf-8"))


EPOCH_IDS: Tuple[bytes, ...] = tuple(h32(f"epoch-{i}") for i in range(4))


class Signer:
    """A block producer with a deterministic key."""

    def __init__(self, account_id: str, stake: int, scheme: str = "ed25519") -> None:
        seed = sha256(account_id.encode("utf-8"))
        self.scheme = scheme
        if scheme == "ed25519":
            self._sk = Ed25519PrivateKey.from_private_bytes(seed)
            raw = self._sk.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
            public_key = PublicKey(KeyType.ED25519, raw)
        elif scheme == "secp256k1":
            scalar = int.from_bytes(seed, "big") % (_SECP256K1_ORDER - 1) + 1
            self._sk = ec.derive_private_key(scalar, ec.SECP256K1())
            point = self._sk.public_key().public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)
            public_key = PublicKey(KeyType.SECP256K1, point[1:])
        else:
            raise ValueError(scheme)
        self.entry = ValidatorStake(account_id, public_key, stake)

    @property
    def public_key(self) -> PublicKey:
        return self.entry.public_key

    def sign(self, message: bytes) -> Signature:
        if self.scheme == "ed25519":
            return Signature(KeyType.ED25519, self._sk.sign(message))
        r, s = decode_dss_signature(self._sk.sign(message, ec.ECDSA(hashes.SHA256())))
        return Signature(KeyType.SECP256K1, r.to_bytes(32, "big") + s.to_bytes(32, "big") + b"\x00")


def make_signers(tag: str, stakes: Iterable[int], scheme: str = "ed25519") -> List[Signer]:
    return [Signer(f"{tag}-{i}.near", stake, scheme) for i, stake in enumerate(stakes)]


def roster(signers: Sequence[Signer]) -> ValidatorSet:
    return ValidatorSet(tuple(s.entry for s in signers))


def build_header(
    *,
    height: int,
    timestamp: int,
    epoch_id: bytes,
    next_epoch_id: bytes,
    next_bp_hash: bytes,
    state_root: bytes,
    signers: Sequence[Signer],
    signing: Optional[Iterable[int]] = None,
    validators: Optional[Tuple[ValidatorStake, ...]] = None,
    prev_block_hash: Optional[bytes] = None,
) -> Header:
    """Build a header and have `signing` (default: everyone) approve it."""
    inner = BlockHeaderInnerLite(
        height=height,
        epoch_id=epoch_id,
        next_epoch_id=next_epoch_id,
        prev_state_root=state_root,
        outcome_root=h32(f"outcome-{height}"),
        timestamp=timestamp,
        next_bp_hash=next_bp_hash,
        block_merkle_root=h32(f"block-merkle-{height}"),
    )
    unsigned = Header(
        prev_block_hash=prev_block_hash or h32(f"prev-{height}"),
        next_block_inner_hash=h32(f"next-inner-{height}"),
        inner_lite=inner,
        inner_rest_hash=h32(f"rest-{height}"),
        validators=validators,
        approvals_after_next=(),
    )
    message = unsigned.approval_message()
    chosen = set(range(len(signers)) if signing is None else signing)
    approvals = tuple(s.sign(message) if i in chosen else None for i, s in enumerate(signers))
    return replace(unsigned, approvals_after_next=approvals)


class Chain:
    """
    A fake source chain: four epochs, three producers each, stakes 34/33/33.

    Genesis is at height 100 in epoch 0 with timestamp T0; by default a
    header at height h is stamped T0 + (h - 100) seconds.
    """

    STAKES = (34, 33, 33)

    def __init__(self, scheme: str = "ed25519", state_root: Optional[bytes] = None) -> None:
        self.rosters = [make_signers(f"e{i}", self.STAKES, scheme) for i in range(len(EPOCH_IDS))]
        self.genesis_height = Height.at(GENESIS_HEIGHT)
        self.state_root = state_root or h32(f"root-{GENESIS_HEIGHT}")

    def validator_set(self, epoch: int = 0) -> ValidatorSet:
        return roster(self.rosters[epoch])

    def stakes(self, epoch: int) -> Tuple[ValidatorStake, ...]:
        return tuple(s.entry for s in self.rosters[epoch])

    def genesis(self) -> ConsensusState:
        return ConsensusState(
            timestamp=T0,
            state_root=self.state_root,
            epoch_id=EPOCH_IDS[0],
            next_epoch_id=EPOCH_IDS[1],
            next_bp_hash=self.validator_set(1).commitment(),
            block_hash=h32(f"block-{GENESIS_HEIGHT}"),
        )

    def client_state(self, **overrides) -> ClientState:
        fields = dict(
            latest_height=self.genesis_height,
            latest_timestamp=T0,
            trusting_period=TRUSTING_PERIOD,
            max_clock_drift=MAX_CLOCK_DRIFT,
        )
        fields.update(overrides)
        return ClientState(**fields)

    def snapshot(self, validators: Optional[ValidatorSet] = None) -> TrustedSnapshot:
        return TrustedSnapshot(
            client_state=self.client_state(),
            height=self.genesis_height,
            consensus_state=self.genesis(),
            validators=validators or self.validator_set(0),
        )

    def header(
        self,
        height: int,
        *,
        epoch: int = 0,
        next_epoch: Optional[int] = None,
        timestamp: Optional[int] = None,
        state_root: Optional[bytes] = None,
        signing: Optional[Iterable[int]] = None,
        signers: Optional[Sequence[Signer]] = None,
        validators: Optional[Tuple[ValidatorStake, ...]] = None,
        next_bp_hash: Optional[bytes] = None,
        prev_block_hash: Optional[bytes] = None,
    ) -> Header:
        return build_header(
            height=height,
            timestamp=T0 + (height - GENESIS_HEIGHT) * SECOND if timestamp is None else timestamp,
            epoch_id=EPOCH_IDS[epoch],
            next_epoch_id=EPOCH_IDS[epoch + 1 if next_epoch is None else next_epoch],
            next_bp_hash=next_bp_hash or self.validator_set(epoch + 1).commitment(),
            state_root=state_root or h32(f"root-{height}"),
            signers=self.rosters[epoch] if signers is None else signers,
            signing=signing,
            validators=validators,
            prev_block_hash=prev_block_hash,
        )


__all__ = [
    "SECOND",
    "DAY",
    "T0",
    "GENESIS_HEIGHT",
    "TRUSTING_PERIOD",
    "MAX_CLOCK_DRIFT",
    "CLIENT_ID",
    "EPOCH_IDS",
    "h32",
    "Signer",
    "make_signers",
    "roster",
    "build_header",
    "Chain",
]
