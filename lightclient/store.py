"""
ConsensusStore: the light client's view of host storage.

Holds, per client id:
- the ClientState scalar fields,
- ConsensusStates keyed by Height (enumerable in height order, prunable),
- ValidatorSets keyed by epoch id.

Values are stored in their compact encoding. `commit` writes every field an
update, a freeze or an initialisation touches inside one KV batch, so either
all of them land or none do.
"""

from __future__ import annotations

import sqlite3
from typing import Iterable, Iterator, List, Optional, Tuple

from .db.kv import CLIENTS, CONSENSUS, EPOCHS, KV, height_from_suffix, height_suffix
from .errors import StoreError, wrap
from .logging import get_logger
from .types import ClientState, ConsensusState, Height
from .validators import EpochChain, ValidatorSet

log = get_logger("lightclient.store")


class ConsensusStore:
    def __init__(self, kv: KV, client_id: str) -> None:
        if not client_id:
            raise ValueError("client_id must be non-empty")
        self._kv = kv
        self.client_id = client_id
        self._cs_prefix = CONSENSUS.prefix(client_id)

    # ---- keys ----

    def _client_key(self) -> bytes:
        return CLIENTS.key(self.client_id)

    def _cs_key(self, height: Height) -> bytes:
        return CONSENSUS.key(self.client_id, height_suffix(height))

    def _epoch_key(self, epoch_id: bytes) -> bytes:
        return EPOCHS.key(self.client_id, epoch_id)

    # ---- client state ----

    def get_client_state(self) -> Optional[ClientState]:
        raw = self._kv.get(self._client_key())
        return None if raw is None else ClientState.from_bytes(raw)

    # ---- consensus states ----

    def get_consensus_state(self, height: Height) -> Optional[ConsensusState]:
        raw = self._kv.get(self._cs_key(height))
        return None if raw is None else ConsensusState.from_bytes(raw)

    def consensus_states(self) -> Iterator[Tuple[Height, ConsensusState]]:
        """All stored consensus states in ascending height order."""
        for key, raw in self._kv.iter_prefix(self._cs_prefix):
            yield height_from_suffix(key[len(self._cs_prefix):]), ConsensusState.from_bytes(raw)

    def prune(self, heights: Iterable[Height]) -> int:
        keys = [self._cs_key(h) for h in heights]
        self._write([], keys)
        if keys:
            log.info("pruned consensus states", extra={"client_id": self.client_id, "count": len(keys)})
        return len(keys)

    # ---- validator sets ----

    def get_validators(self, epoch_id: bytes) -> Optional[ValidatorSet]:
        raw = self._kv.get(self._epoch_key(epoch_id))
        return None if raw is None else ValidatorSet.from_bytes(raw)

    def epoch_chain(self) -> EpochChain:
        prefix = EPOCHS.prefix(self.client_id)
        chain = EpochChain()
        for key, raw in self._kv.iter_prefix(prefix):
            epoch_id = key[len(prefix):]
            chain = chain.extend(epoch_id, ValidatorSet.from_bytes(raw))
        return chain

    # ---- atomic commit ----

    def commit(
        self,
        *,
        client_state: ClientState,
        consensus: Optional[Tuple[Height, ConsensusState]] = None,
        validators: Optional[Tuple[bytes, ValidatorSet]] = None,
    ) -> None:
        puts = [(self._client_key(), client_state.to_bytes())]
        if consensus is not None:
            height, cs = consensus
            puts.append((self._cs_key(height), cs.to_bytes()))
        if validators is not None:
            epoch_id, vs = validators
            puts.append((self._epoch_key(epoch_id), vs.to_bytes()))
        self._write(puts, [])

    def _write(self, puts: List[Tuple[bytes, bytes]], deletes: List[bytes]) -> None:
        try:
            with self._kv.batch() as b:
                for k, v in puts:
                    b.put(k, v)
                for k in deletes:
                    b.delete(k)
        except (sqlite3.Error, OSError) as e:
            raise wrap(e, as_=StoreError, client_id=self.client_id) from e


__all__ = ["ConsensusStore"]
