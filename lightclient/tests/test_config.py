from __future__ import annotations

import io
import json
import logging

import pytest

from lightclient import logging as lclog
from lightclient.config import NANOS_PER_SECOND, LightClientConfig, get_config, parse_duration
from lightclient.errors import ConfigError


@pytest.mark.parametrize(
    "text,ns",
    [
        ("30", 30 * NANOS_PER_SECOND),
        ("250ms", 250_000_000),
        ("10us", 10_000),
        ("7ns", 7),
        ("5m", 300 * NANOS_PER_SECOND),
        ("3h", 3 * 3600 * NANOS_PER_SECOND),
        ("14d", 14 * 86400 * NANOS_PER_SECOND),
        (" 2 S ", 2 * NANOS_PER_SECOND),
    ],
)
def test_parse_duration(text, ns):
    assert parse_duration(text) == ns


@pytest.mark.parametrize("text", ["", "-1s", "1.5h", "3w", "soon"])
def test_parse_duration_rejects(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_defaults():
    cfg = get_config()
    assert cfg == LightClientConfig()
    assert cfg.limits.max_validators == 1024
    assert cfg.limits.max_proof_depth == 64
    assert cfg.verifier.signature_workers == 1
    assert cfg.defaults.trusting_period == 14 * 86400 * NANOS_PER_SECOND


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("LIGHTCLIENT_MAX_VALIDATORS", "0x80")
    monkeypatch.setenv("LIGHTCLIENT_MAX_PROOF_DEPTH", "32")
    monkeypatch.setenv("LIGHTCLIENT_SIGNATURE_WORKERS", "8")
    monkeypatch.setenv("LIGHTCLIENT_TRUSTING_PERIOD", "7d")
    monkeypatch.setenv("LIGHTCLIENT_MAX_CLOCK_DRIFT", "10s")
    monkeypatch.setenv("LIGHTCLIENT_LOG_LEVEL", "debug")
    monkeypatch.setenv("LIGHTCLIENT_LOG_FORMAT", "JSON")
    cfg = get_config()
    assert cfg.limits.max_validators == 128
    assert cfg.limits.max_proof_depth == 32
    assert cfg.verifier.signature_workers == 8
    assert cfg.defaults.trusting_period == 7 * 86400 * NANOS_PER_SECOND
    assert cfg.defaults.max_clock_drift == 10 * NANOS_PER_SECOND
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.format == "json"


def test_config_is_cached(monkeypatch):
    first = get_config()
    monkeypatch.setenv("LIGHTCLIENT_MAX_VALIDATORS", "7")
    assert get_config() is first
    get_config.cache_clear()
    assert get_config().limits.max_validators == 7


@pytest.mark.parametrize(
    "key,value",
    [
        ("LIGHTCLIENT_MAX_VALIDATORS", "0"),
        ("LIGHTCLIENT_MAX_VALIDATORS", "many"),
        ("LIGHTCLIENT_MAX_PROOF_DEPTH", "1000"),
        ("LIGHTCLIENT_SIGNATURE_WORKERS", "0"),
        ("LIGHTCLIENT_TRUSTING_PERIOD", "0s"),
        ("LIGHTCLIENT_MAX_CLOCK_DRIFT", "later"),
        ("LIGHTCLIENT_LOG_LEVEL", "chatty"),
        ("LIGHTCLIENT_LOG_FORMAT", "xml"),
    ],
)
def test_invalid_env_is_config_error(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ConfigError):
        get_config()


def test_to_dict_is_json_safe():
    json.dumps(get_config().to_dict())


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture
def restore_logger():
    logger = logging.getLogger("lightclient")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


def test_json_logs_carry_context(restore_logger):
    buf = io.StringIO()
    lclog.configure(json=True, level="DEBUG", stream=buf)
    log = lclog.get_logger("lightclient.test")
    with lclog.trace_scope(client_id="near-0") as tid:
        log.info("header accepted", extra={"height": "0-12", "epoch": b"\x01\x02"})
    record = json.loads(buf.getvalue().strip())
    assert record["msg"] == "header accepted"
    assert record["trace_id"] == tid
    assert record["client_id"] == "near-0"
    assert record["height"] == "0-12"
    assert record["epoch"] == "0102"
    assert lclog.context() == {}


def test_text_logs(restore_logger):
    buf = io.StringIO()
    lclog.configure(json=False, level="INFO", stream=buf)
    log = lclog.get_logger("lightclient.test")
    lclog.bind(client_id="near-7")
    try:
        log.debug("hidden")
        log.warning("client frozen", extra={"reason": "conflicting state roots"})
    finally:
        lclog.unbind("client_id")
    line = buf.getvalue().strip()
    assert "hidden" not in line
    assert "| WARNING |" in line
    assert "client_id=near-7" in line
    assert line.endswith("| client frozen")


def test_format_from_environment(monkeypatch, restore_logger):
    monkeypatch.setenv("LIGHTCLIENT_LOG_FORMAT", "json")
    buf = io.StringIO()
    lclog.configure_from_config(get_config(), stream=buf)
    lclog.get_logger("lightclient.test").info("hello")
    assert json.loads(buf.getvalue())["msg"] == "hello"
