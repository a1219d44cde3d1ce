from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import pytest

from lightclient.client import LightClient, new_client_state
from lightclient.config import LightClientConfig
from lightclient.errors import (
    ClientAlreadyExists,
    ClientFrozen,
    ClientNotFound,
    EpochMismatch,
    HeightError,
    InsufficientStake,
    InvalidHeader,
    InvalidTimestamp,
)
from lightclient.hashing import ZERO32
from lightclient.tests import CLIENT_ID, DAY, EPOCH_IDS, SECOND, T0, TRUSTING_PERIOD, Chain
from lightclient.types import ConsensusState, Height, Status


# ---------------------------------------------------------------------------
# Initialisation
# ---------------------------------------------------------------------------


def test_uninitialised_client(kv, clock, cfg):
    lc = LightClient(CLIENT_ID, kv, clock=clock, config=cfg)
    with pytest.raises(ClientNotFound):
        lc.client_state
    with pytest.raises(ClientNotFound):
        lc.status()


def test_initialise_stores_trusted_root(chain: Chain, client: LightClient):
    assert client.client_state == chain.client_state()
    assert client.consensus_state(chain.genesis_height) == chain.genesis()
    assert client.store.get_validators(EPOCH_IDS[0]) == chain.validator_set(0)
    assert client.status() is Status.ACTIVE


def test_initialise_twice(chain: Chain, client: LightClient):
    with pytest.raises(ClientAlreadyExists):
        client.initialize(chain.client_state(), chain.genesis(), chain.validator_set(0))


def test_initialise_rejects_frozen_state(chain: Chain, kv, clock, cfg):
    lc = LightClient(CLIENT_ID, kv, clock=clock, config=cfg)
    with pytest.raises(ClientFrozen):
        lc.initialize(chain.client_state(frozen_height=Height.at(1)), chain.genesis(), chain.validator_set(0))
    assert lc.store.get_client_state() is None


def test_initialise_rejects_empty_root(chain: Chain, kv, clock, cfg):
    lc = LightClient(CLIENT_ID, kv, clock=clock, config=cfg)
    with pytest.raises(InvalidHeader):
        lc.initialize(chain.client_state(), replace(chain.genesis(), state_root=ZERO32), chain.validator_set(0))


def test_initialise_rejects_timestamp_disagreement(chain: Chain, kv, clock, cfg):
    lc = LightClient(CLIENT_ID, kv, clock=clock, config=cfg)
    with pytest.raises(InvalidTimestamp):
        lc.initialize(chain.client_state(latest_timestamp=T0 + 1), chain.genesis(), chain.validator_set(0))


def test_new_client_state_uses_configured_defaults():
    cfg = LightClientConfig()
    cs = new_client_state(Height.at(5), T0, config=cfg)
    assert cs.trusting_period == 14 * DAY
    assert cs.max_clock_drift == DAY
    assert not cs.is_frozen
    assert new_client_state(Height.at(5), T0, trusting_period=SECOND, config=cfg).trusting_period == SECOND


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


def test_status_expires_strictly_after_trusting_period(client: LightClient, clock):
    clock.set(T0 + TRUSTING_PERIOD)
    assert client.status() is Status.ACTIVE
    clock.advance(1)
    assert client.status() is Status.EXPIRED
    # expiry is derived; nothing was written
    assert not client.client_state.is_frozen


def test_status_with_explicit_now(client: LightClient):
    assert client.status(now=T0 + TRUSTING_PERIOD + 1) is Status.EXPIRED
    assert client.status(now=T0 - DAY) is Status.ACTIVE


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------


def test_update_advances_latest(chain: Chain, client: LightClient):
    header = chain.header(105)
    cs = client.update(header)
    assert cs == header.to_consensus_state()
    state = client.client_state
    assert state.latest_height == Height.at(105)
    assert state.latest_timestamp == header.timestamp
    assert client.consensus_state(Height.at(105)) == cs
    assert _heights(client.store) == [Height.at(100), Height.at(105)]


def test_update_block_hash_commits_to_header(chain: Chain, client: LightClient):
    header = chain.header(105)
    cs = client.update(header)
    assert cs.block_hash == header.current_block_hash()
    assert isinstance(cs, ConsensusState)


def test_rejected_update_leaves_store_untouched(chain: Chain, client: LightClient, kv):
    before = sorted(kv.iter_prefix(b""))
    with pytest.raises(InsufficientStake):
        client.update(chain.header(105, signing=[2]))
    with pytest.raises(HeightError):
        client.update(chain.header(99, timestamp=T0))
    assert sorted(kv.iter_prefix(b"")) == before


def test_update_rolls_over_two_epochs(chain: Chain, client: LightClient):
    client.update(chain.header(102))
    client.update(chain.header(110, epoch=1, validators=chain.stakes(1)))
    client.update(chain.header(115, epoch=1))
    client.update(chain.header(120, epoch=2, validators=chain.stakes(2)))
    assert client.client_state.latest_height == Height.at(120)
    epochs = client.store.epoch_chain()
    assert len(epochs) == 3
    for i in range(3):
        assert epochs.get(EPOCH_IDS[i]) == chain.validator_set(i)


def test_old_epoch_roster_rejected_after_rollover(chain: Chain, client: LightClient):
    client.update(chain.header(110, epoch=1, validators=chain.stakes(1)))
    # a later header from the finished epoch no longer chains
    with pytest.raises(EpochMismatch):
        client.update(chain.header(111, epoch=0))


def test_known_epoch_cannot_be_rebound(chain: Chain, client: LightClient):
    # epoch 1 names epoch 0 as its successor but commits to roster 3
    client.update(
        chain.header(
            110,
            epoch=1,
            validators=chain.stakes(1),
            next_epoch=0,
            next_bp_hash=chain.validator_set(3).commitment(),
        )
    )
    hijack = chain.header(111, epoch=0, signers=chain.rosters[3], validators=chain.stakes(3))
    with pytest.raises(EpochMismatch):
        client.update(hijack)
    assert client.store.get_validators(EPOCH_IDS[0]) == chain.validator_set(0)
    assert client.client_state.latest_height == Height.at(110)


def test_known_epoch_reentered_with_same_roster(chain: Chain, client: LightClient):
    client.update(
        chain.header(
            110,
            epoch=1,
            validators=chain.stakes(1),
            next_epoch=0,
            next_bp_hash=chain.validator_set(0).commitment(),
        )
    )
    client.update(chain.header(111, epoch=0, validators=chain.stakes(0)))
    assert client.client_state.latest_height == Height.at(111)
    assert client.store.get_validators(EPOCH_IDS[0]) == chain.validator_set(0)


def test_updates_are_serialised(chain: Chain, client: LightClient):
    headers = [chain.header(h) for h in range(101, 109)]
    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(lambda h: _try_update(client, h), headers))
    latest = client.client_state.latest_height
    assert latest <= Height.at(108)
    assert latest in _heights(client.store)


def _try_update(client: LightClient, header):
    try:
        return client.update(header)
    except HeightError:
        return None


def _heights(store):
    return [h for h, _ in store.consensus_states()]


# ---------------------------------------------------------------------------
# Pruning
# ---------------------------------------------------------------------------


def test_prune_drops_expired_states(chain: Chain, client: LightClient):
    client.update(chain.header(105))
    client.update(chain.header(110))
    pruned = client.prune(now=T0 + TRUSTING_PERIOD + 6 * SECOND)
    assert pruned == [Height.at(100), Height.at(105)]
    assert _heights(client.store) == [Height.at(110)]
    assert client.status(now=T0 + TRUSTING_PERIOD + 6 * SECOND) is Status.ACTIVE


def test_prune_keeps_latest_even_when_expired(chain: Chain, client: LightClient):
    client.update(chain.header(105))
    pruned = client.prune(now=T0 + 10 * TRUSTING_PERIOD)
    assert pruned == [Height.at(100)]
    assert _heights(client.store) == [Height.at(105)]


def test_prune_nothing_expired(client: LightClient):
    assert client.prune() == []
    assert _heights(client.store) == [Height.at(100)]
