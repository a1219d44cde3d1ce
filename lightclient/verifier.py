"""
Header Verifier.

Validates an untrusted header against a trusted snapshot (client state,
consensus state at the trusted height and the roster of its epoch):

1. height strictly above the trusted height
2. epoch continuity: same epoch, or the next epoch with a roster whose
   commitment equals the trusted `next_bp_hash`
3. roster size within configured limits
4. finality message recomputed from the header's own fields
5. every present approval verified against the roster entry at the same
   position (optionally on a thread pool)
6. verified stake must be a strict two-thirds supermajority
7. timestamp within [trusted ts, trusted ts + max_clock_drift]

The verifier is a pure function: it reads immutable inputs and returns a
`VerifiedHeader`; persisting the outcome is the client's job.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .config import LightClientConfig, get_config
from .crypto import Signature
from .errors import (
    EpochMismatch,
    HeightError,
    InsufficientStake,
    InvalidHeader,
    InvalidSignature,
    InvalidTimestamp,
    LimitExceeded,
)
from .logging import get_logger
from .types import ClientState, ConsensusState, Header, Height
from .validators import ValidatorSet

log = get_logger("lightclient.verifier")


@dataclass(frozen=True)
class TrustedSnapshot:
    client_state: ClientState
    height: Height
    consensus_state: ConsensusState
    validators: ValidatorSet


@dataclass(frozen=True)
class VerifiedHeader:
    height: Height
    consensus_state: ConsensusState
    verified_stake: int
    total_stake: int
    # (epoch_id, roster) when the header opened a new epoch
    new_epoch: Optional[Tuple[bytes, ValidatorSet]] = None


def has_supermajority(verified: int, total: int) -> bool:
    return 3 * verified > 2 * total


def verify_header(
    trusted: TrustedSnapshot,
    header: Header,
    *,
    config: Optional[LightClientConfig] = None,
) -> VerifiedHeader:
    cfg = config or get_config()
    cs = trusted.consensus_state

    if header.height <= trusted.height:
        raise HeightError(
            "header height must exceed the trusted height",
            trusted=str(trusted.height),
            got=str(header.height),
        )

    validators, rollover = select_validators(trusted, header, max_validators=cfg.limits.max_validators)

    if len(validators) > cfg.limits.max_validators:
        raise LimitExceeded("validators", cfg.limits.max_validators, len(validators))

    message = header.approval_message()
    verified = tally_stake(
        validators,
        header.approvals_after_next,
        message,
        workers=cfg.verifier.signature_workers,
    )
    if not has_supermajority(verified, validators.total_stake):
        raise InsufficientStake(verified, validators.total_stake, height=str(header.height))

    check_timestamp(trusted.client_state, cs, header)

    log.debug(
        "header verified",
        extra={
            "height": str(header.height),
            "epoch": header.epoch_id.hex(),
            "verified_stake": str(verified),
            "total_stake": str(validators.total_stake),
            "rollover": rollover,
        },
    )
    return VerifiedHeader(
        height=header.height,
        consensus_state=header.to_consensus_state(),
        verified_stake=verified,
        total_stake=validators.total_stake,
        new_epoch=(header.epoch_id, validators) if rollover else None,
    )


def select_validators(
    trusted: TrustedSnapshot,
    header: Header,
    *,
    max_validators: Optional[int] = None,
) -> Tuple[ValidatorSet, bool]:
    """
    Return the roster that must have signed `header`, and whether it opens a
    new epoch. A carried validator list longer than `max_validators` is
    rejected before it is hashed.
    """
    cs = trusted.consensus_state
    if header.epoch_id == cs.epoch_id:
        return trusted.validators, False

    if header.epoch_id != cs.next_epoch_id:
        raise EpochMismatch(
            "header epoch is neither the trusted epoch nor the next one",
            trusted_epoch=cs.epoch_id,
            next_epoch=cs.next_epoch_id,
            got=header.epoch_id,
        )
    if header.validators is None:
        raise EpochMismatch("epoch rollover header carries no validator list", epoch_id=header.epoch_id)
    if max_validators is not None and len(header.validators) > max_validators:
        raise LimitExceeded("validators", max_validators, len(header.validators))
    try:
        validators = ValidatorSet(header.validators)
    except ValueError as e:
        raise InvalidHeader(f"unusable validator list: {e}", epoch_id=header.epoch_id) from e
    if validators.commitment() != cs.next_bp_hash:
        raise EpochMismatch(
            "validator list does not match the trusted next-epoch commitment",
            expected=cs.next_bp_hash,
            got=validators.commitment(),
        )
    return validators, True


def tally_stake(
    validators: ValidatorSet,
    approvals: Sequence[Optional[Signature]],
    message: bytes,
    *,
    workers: int = 1,
) -> int:
    """
    Sum the stake behind valid approvals.

    Approvals are positional (approvals[i] belongs to validators[i]); absent
    entries count for nothing. Any present signature that fails rejects the
    whole header, reporting the lowest failing position so the outcome does
    not depend on scheduling.
    """
    if len(approvals) > len(validators):
        raise InvalidSignature(
            "more approvals than validators",
            approvals=len(approvals),
            validators=len(validators),
        )
    jobs = [(i, sig) for i, sig in enumerate(approvals) if sig is not None]

    def check(job: Tuple[int, Signature]) -> Tuple[int, int, Optional[InvalidSignature]]:
        i, sig = job
        try:
            return i, validators.verify(i, message, sig), None
        except InvalidSignature as e:
            return i, 0, e

    if workers > 1 and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=min(workers, len(jobs)), thread_name_prefix="lc-sig") as pool:
            results: List[Tuple[int, int, Optional[InvalidSignature]]] = list(pool.map(check, jobs))
    else:
        results = [check(j) for j in jobs]

    failures = [(i, e) for i, _, e in results if e is not None]
    if failures:
        i, err = min(failures, key=lambda f: f[0])
        raise err.with_context(validator_index=i, account_id=validators[i].account_id)
    return sum(stake for _, stake, _ in results)


def check_timestamp(client_state: ClientState, trusted: ConsensusState, header: Header) -> None:
    upper = trusted.timestamp + client_state.max_clock_drift
    if header.timestamp < trusted.timestamp:
        raise InvalidTimestamp(
            "header timestamp precedes the trusted timestamp",
            trusted=trusted.timestamp,
            got=header.timestamp,
        )
    if header.timestamp > upper:
        raise InvalidTimestamp(
            "header timestamp exceeds the clock drift bound",
            bound=upper,
            got=header.timestamp,
        )


__all__ = [
    "TrustedSnapshot",
    "VerifiedHeader",
    "has_supermajority",
    "verify_header",
    "select_validators",
    "tally_stake",
    "check_timestamp",
]
