"""
Client Update State Machine.

`LightClient` is the surface a host client registry talks to:

    initialize(client_state, consensus_state, validators)
    status(now)                      -> Active | Frozen | Expired
    update(header)                   -> new ConsensusState
    check_misbehaviour(misbehaviour) -> frozen-at Height
    verify_membership(height, proof, key, value, now)
    verify_non_membership(height, proof, key, now)
    prune(now)                       -> pruned heights

States are Active and Frozen (terminal). Expired is derived on demand from
the latest consensus state's timestamp and the caller's clock; nothing
about "now" is stored. Every write (initialise, update, freeze) happens
under one lock and lands in one store batch; a rejected call leaves the
store untouched.
"""

from __future__ import annotations

import threading
from typing import List, Optional

from .clock import Clock, SystemClock
from .config import LightClientConfig, get_config
from .db.kv import KV
from .errors import (
    ClientAlreadyExists,
    ClientFrozen,
    ClientNotFound,
    EpochMismatch,
    HeightError,
    InvalidHeader,
    InvalidTimestamp,
    LightClientError,
    MisbehaviourNotProven,
)
from .hashing import ZERO32
from .logging import get_logger, trace_scope
from .misbehaviour import detect
from .proof import verify_against
from .store import ConsensusStore
from .types import ClientState, ConsensusState, Header, Height, Misbehaviour, Proof, Status
from .validators import ValidatorSet
from .verifier import TrustedSnapshot, verify_header

log = get_logger("lightclient.client")


def new_client_state(
    height: Height,
    timestamp: int,
    *,
    trusting_period: Optional[int] = None,
    max_clock_drift: Optional[int] = None,
    config: Optional[LightClientConfig] = None,
) -> ClientState:
    """ClientState for a fresh client, filling durations from configuration."""
    cfg = config or get_config()
    return ClientState(
        latest_height=height,
        latest_timestamp=timestamp,
        trusting_period=cfg.defaults.trusting_period if trusting_period is None else trusting_period,
        max_clock_drift=cfg.defaults.max_clock_drift if max_clock_drift is None else max_clock_drift,
    )


class LightClient:
    def __init__(
        self,
        client_id: str,
        kv: KV,
        *,
        clock: Optional[Clock] = None,
        config: Optional[LightClientConfig] = None,
    ) -> None:
        self.client_id = client_id
        self.store = ConsensusStore(kv, client_id)
        self.clock = clock or SystemClock()
        self.config = config or get_config()
        self._lock = threading.RLock()

    # ---- reads ----

    @property
    def client_state(self) -> ClientState:
        cs = self.store.get_client_state()
        if cs is None:
            raise ClientNotFound(self.client_id)
        return cs

    def consensus_state(self, height: Height) -> Optional[ConsensusState]:
        return self.store.get_consensus_state(height)

    def status(self, now: Optional[int] = None) -> Status:
        state = self.client_state
        if state.is_frozen:
            return Status.FROZEN
        latest = self.store.get_consensus_state(state.latest_height)
        now = self.clock.now() if now is None else now
        if latest is None or latest.is_expired(now, state.trusting_period):
            return Status.EXPIRED
        return Status.ACTIVE

    # ---- writes ----

    def initialize(
        self,
        client_state: ClientState,
        consensus_state: ConsensusState,
        validators: ValidatorSet,
    ) -> None:
        """Install the client with its trusted root and the roster of that root's epoch."""
        with self._lock:
            if self.store.get_client_state() is not None:
                raise ClientAlreadyExists(self.client_id)
            if client_state.is_frozen:
                raise ClientFrozen(client_state.frozen_height, reason="frozen height not allowed at initialisation")
            if consensus_state.state_root == ZERO32:
                raise InvalidHeader("empty state root")
            if consensus_state.timestamp != client_state.latest_timestamp:
                raise InvalidTimestamp(
                    "client state timestamp disagrees with the consensus state",
                    client_state=client_state.latest_timestamp,
                    consensus_state=consensus_state.timestamp,
                )
            self.store.commit(
                client_state=client_state,
                consensus=(client_state.latest_height, consensus_state),
                validators=(consensus_state.epoch_id, validators),
            )
            log.info(
                "client initialised",
                extra={"client_id": self.client_id, "height": str(client_state.latest_height)},
            )

    def update(self, header: Header) -> ConsensusState:
        with self._lock, trace_scope(client_id=self.client_id):
            state = self.client_state
            if state.is_frozen:
                raise ClientFrozen(state.frozen_height)
            trusted = self._snapshot(state, state.latest_height)
            try:
                verified = verify_header(trusted, header, config=self.config)
                if verified.new_epoch is not None:
                    # an epoch id stays bound to the roster it was first registered with
                    self.store.epoch_chain().extend(*verified.new_epoch)
            except LightClientError as e:
                log.info(
                    "header rejected",
                    extra={"height": str(header.height), "reason": e.code_str},
                )
                raise
            self.store.commit(
                client_state=state.advanced(verified.height, verified.consensus_state.timestamp),
                consensus=(verified.height, verified.consensus_state),
                validators=verified.new_epoch,
            )
            log.info(
                "header accepted",
                extra={
                    "height": str(verified.height),
                    "epoch": header.epoch_id.hex(),
                    "rollover": verified.new_epoch is not None,
                },
            )
            return verified.consensus_state

    def check_misbehaviour(self, misbehaviour: Misbehaviour) -> Height:
        """Freeze the client on proven misbehaviour and return the frozen-at height."""
        with self._lock, trace_scope(client_id=self.client_id):
            state = self.client_state
            if state.is_frozen:
                raise ClientFrozen(state.frozen_height)
            if misbehaviour.client_id != self.client_id:
                raise MisbehaviourNotProven(
                    "misbehaviour targets another client",
                    expected=self.client_id,
                    got=misbehaviour.client_id,
                )
            trusted = self._snapshot(state, misbehaviour.trusted_height)
            evidence = detect(trusted, misbehaviour, config=self.config)
            self.store.commit(client_state=state.frozen(evidence.freeze_height))
            log.warning(
                "client frozen",
                extra={"height": str(evidence.freeze_height), "reason": evidence.reason},
            )
            return evidence.freeze_height

    # ---- proofs ----

    def verify_membership(
        self,
        height: Height,
        proof: Proof,
        key: bytes,
        value: Optional[bytes],
        now: Optional[int] = None,
    ) -> None:
        """`value=None` verifies an absence claim."""
        state = self.client_state
        if state.is_frozen:
            raise ClientFrozen(state.frozen_height)
        if height > state.latest_height:
            raise HeightError(
                "proof height is above the latest trusted height",
                latest=str(state.latest_height),
                got=str(height),
            )
        cs = self.store.get_consensus_state(height)
        if cs is None:
            raise HeightError("no consensus state at proof height", height=str(height))
        now = self.clock.now() if now is None else now
        verify_against(state, cs, proof, key, value, now=now, config=self.config)

    def verify_non_membership(
        self,
        height: Height,
        proof: Proof,
        key: bytes,
        now: Optional[int] = None,
    ) -> None:
        self.verify_membership(height, proof, key, None, now)

    # ---- maintenance ----

    def prune(self, now: Optional[int] = None) -> List[Height]:
        """Drop expired consensus states, always keeping the latest one."""
        with self._lock:
            state = self.client_state
            now = self.clock.now() if now is None else now
            expired = [
                h
                for h, cs in self.store.consensus_states()
                if h != state.latest_height and cs.is_expired(now, state.trusting_period)
            ]
            self.store.prune(expired)
            return expired

    # ---- internals ----

    def _snapshot(self, state: ClientState, height: Height) -> TrustedSnapshot:
        if height > state.latest_height:
            raise HeightError(
                "trusted height is above the latest height",
                latest=str(state.latest_height),
                got=str(height),
            )
        cs = self.store.get_consensus_state(height)
        if cs is None:
            raise HeightError("no consensus state at trusted height", height=str(height))
        validators = self.store.get_validators(cs.epoch_id)
        if validators is None:
            raise EpochMismatch("no validator set registered for the trusted epoch", epoch_id=cs.epoch_id)
        return TrustedSnapshot(client_state=state, height=height, consensus_state=cs, validators=validators)


__all__ = ["LightClient", "new_client_state"]
