from __future__ import annotations

import pytest

from lightclient.client import LightClient
from lightclient.clock import FixedClock
from lightclient.config import LightClientConfig, get_config
from lightclient.db.memory import MemoryKV
from lightclient.tests import CLIENT_ID, T0, Chain


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    for key in (
        "LIGHTCLIENT_MAX_VALIDATORS",
        "LIGHTCLIENT_MAX_PROOF_DEPTH",
        "LIGHTCLIENT_SIGNATURE_WORKERS",
        "LIGHTCLIENT_TRUSTING_PERIOD",
        "LIGHTCLIENT_MAX_CLOCK_DRIFT",
        "LIGHTCLIENT_LOG_LEVEL",
        "LIGHTCLIENT_LOG_FORMAT",
    ):
        monkeypatch.delenv(key, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def cfg() -> LightClientConfig:
    return LightClientConfig()


@pytest.fixture
def chain() -> Chain:
    return Chain()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def kv() -> MemoryKV:
    return MemoryKV()


@pytest.fixture
def client(chain: Chain, kv: MemoryKV, clock: FixedClock, cfg: LightClientConfig) -> LightClient:
    lc = LightClient(CLIENT_ID, kv, clock=clock, config=cfg)
    lc.initialize(chain.client_state(), chain.genesis(), chain.validator_set(0))
    return lc
