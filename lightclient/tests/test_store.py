from __future__ import annotations

import pytest

from lightclient.db import open_kv
from lightclient.db.kv import CONSENSUS, Keyspace, height_from_suffix, height_suffix
from lightclient.db.memory import MemoryKV
from lightclient.db.sqlite import SQLiteKV, _prefix_hi, open_sqlite_kv
from lightclient.errors import StoreError
from lightclient.store import ConsensusStore
from lightclient.tests import CLIENT_ID, EPOCH_IDS, Chain
from lightclient.types import Height


@pytest.fixture(params=["memory", "sqlite-memory", "sqlite-file"])
def any_kv(request, tmp_path):
    if request.param == "memory":
        kv = MemoryKV()
    elif request.param == "sqlite-memory":
        kv = open_sqlite_kv(":memory:")
    else:
        kv = open_sqlite_kv(tmp_path / "lc.db")
    yield kv
    kv.close()


def _heights(store: ConsensusStore):
    return [h for h, _ in store.consensus_states()]


# ---------------------------------------------------------------------------
# KV backends
# ---------------------------------------------------------------------------


def test_batch_commits_together(any_kv):
    with any_kv.batch() as b:
        b.put(b"a", b"1")
        b.put(b"b", b"2")
        b.delete(b"a")
    assert any_kv.get(b"a") is None
    assert any_kv.get(b"b") == b"2"
    assert any_kv.has(b"b")


def test_batch_rolls_back_on_exception(any_kv):
    any_kv.put(b"keep", b"0")
    with pytest.raises(RuntimeError):
        with any_kv.batch() as b:
            b.put(b"x", b"1")
            b.delete(b"keep")
            raise RuntimeError("boom")
    assert any_kv.get(b"x") is None
    assert any_kv.get(b"keep") == b"0"


def test_iter_prefix_is_ordered(any_kv):
    for k in (b"p:\x02", b"p:\x01", b"q:\x00", b"p:\xff"):
        any_kv.put(k, k)
    assert [k for k, _ in any_kv.iter_prefix(b"p:")] == [b"p:\x01", b"p:\x02", b"p:\xff"]


def test_prefix_upper_bound():
    assert _prefix_hi(b"ab") == b"ac"
    assert _prefix_hi(b"a\xff") == b"b"
    assert _prefix_hi(b"\xff\xff") is None


def test_key_layout():
    assert Keyspace(b"s").prefix("near-0") == b"s/\x06near-0"
    assert CONSENSUS.key("near-0", b"\x01") == b"s/\x06near-0\x01"
    suffix = height_suffix(Height(1, 258))
    assert suffix == b"\x00" * 7 + b"\x01" + b"\x00" * 6 + b"\x01\x02"
    assert height_from_suffix(suffix) == Height(1, 258)
    with pytest.raises(ValueError):
        CONSENSUS.prefix("")
    with pytest.raises(ValueError):
        Keyspace(b"a/b")


def test_open_kv_uris(tmp_path):
    assert isinstance(open_kv("memory://"), MemoryKV)
    assert isinstance(open_kv(f"sqlite://{tmp_path / 'a.db'}"), SQLiteKV)
    assert isinstance(open_kv(str(tmp_path / "b.db")), SQLiteKV)
    with pytest.raises(ValueError):
        open_kv("redis://localhost")


# ---------------------------------------------------------------------------
# ConsensusStore
# ---------------------------------------------------------------------------


def test_consensus_states_in_height_order(any_kv, chain: Chain):
    store = ConsensusStore(any_kv, CLIENT_ID)
    cs = chain.genesis()
    for h in (256, 2, 10, 1 << 40):
        store.commit(client_state=chain.client_state(), consensus=(Height.at(h), cs))
    # another client's entries never leak in
    ConsensusStore(any_kv, CLIENT_ID + "0").commit(client_state=chain.client_state(), consensus=(Height.at(5), cs))
    assert _heights(store) == [Height.at(2), Height.at(10), Height.at(256), Height.at(1 << 40)]


def test_commit_writes_everything(any_kv, chain: Chain):
    store = ConsensusStore(any_kv, CLIENT_ID)
    store.commit(
        client_state=chain.client_state(),
        consensus=(chain.genesis_height, chain.genesis()),
        validators=(EPOCH_IDS[0], chain.validator_set(0)),
    )
    assert store.get_client_state() == chain.client_state()
    assert store.get_consensus_state(chain.genesis_height) == chain.genesis()
    assert store.get_validators(EPOCH_IDS[0]) == chain.validator_set(0)
    assert store.get_validators(EPOCH_IDS[1]) is None
    assert len(store.epoch_chain()) == 1


def test_prune(any_kv, chain: Chain):
    store = ConsensusStore(any_kv, CLIENT_ID)
    for h in (1, 2, 3):
        store.commit(client_state=chain.client_state(), consensus=(Height.at(h), chain.genesis()))
    assert store.prune([Height.at(1), Height.at(3)]) == 2
    assert _heights(store) == [Height.at(2)]
    assert store.prune([]) == 0


def test_backend_failure_is_store_error(chain: Chain, tmp_path):
    kv = open_sqlite_kv(tmp_path / "closed.db")
    store = ConsensusStore(kv, CLIENT_ID)
    kv.close()
    with pytest.raises(StoreError) as ei:
        store.commit(client_state=chain.client_state())
    assert ei.value.retryable


def test_empty_client_id_rejected():
    with pytest.raises(ValueError):
        ConsensusStore(MemoryKV(), "")
