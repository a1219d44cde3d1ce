"""
Light-client configuration.

Bounds that keep verification work finite (validator-set size, proof depth),
signature-check parallelism, defaults for new client states and logging.
All fields have defaults and can be overridden via environment variables.
Nothing here imports heavy dependencies.

Environment variables (all optional):

  # Limits
  LIGHTCLIENT_MAX_VALIDATORS=1024
  LIGHTCLIENT_MAX_PROOF_DEPTH=64

  # Verifier
  LIGHTCLIENT_SIGNATURE_WORKERS=1       # >1 checks signatures on a thread pool

  # Defaults for new client states (durations: 30s, 5m, 12h, 14d, 250ms, 10us, 7ns)
  LIGHTCLIENT_TRUSTING_PERIOD=14d
  LIGHTCLIENT_MAX_CLOCK_DRIFT=1d

  # Logging
  LIGHTCLIENT_LOG_LEVEL=INFO
  LIGHTCLIENT_LOG_FORMAT=text           # json | text | auto
"""

from __future__ import annotations

import os
import re
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from typing import Dict, Optional

from .errors import ConfigError

NANOS_PER_SECOND = 1_000_000_000

# ------------------------------- helpers ------------------------------------


_DURATION_RE = re.compile(r"^\s*(\d+)\s*(ns|us|ms|s|m|h|d)?\s*$", re.IGNORECASE)

_DURATION_NS = {
    "ns": 1,
    "us": 1_000,
    "ms": 1_000_000,
    "": NANOS_PER_SECOND,
    "s": NANOS_PER_SECOND,
    "m": 60 * NANOS_PER_SECOND,
    "h": 3600 * NANOS_PER_SECOND,
    "d": 86400 * NANOS_PER_SECOND,
}


def parse_duration(value: str) -> int:
    """
    Parse a tiny duration language into nanoseconds.
      "30" -> 30s
      "250ms", "10us", "7ns"
      "2s", "5m", "3h", "14d"
    """
    m = _DURATION_RE.match(value)
    if not m:
        raise ValueError(f"unparseable duration {value!r}")
    unit = (m.group(2) or "").lower()
    return int(m.group(1)) * _DURATION_NS[unit]


def _getenv(key: str, default: Optional[str] = None) -> Optional[str]:
    """Environment value, with blank treated as unset."""
    raw = os.environ.get(key, "")
    return raw if raw.strip() else default


def _getenv_int(key: str, default: int) -> int:
    raw = _getenv(key)
    if raw is None:
        return default
    try:
        return int(raw.strip(), 0)
    except ValueError as e:
        raise ValueError(f"{key} is not an integer: {raw!r}") from e


def _getenv_duration(key: str, default: str) -> int:
    raw = _getenv(key, default) or default
    try:
        return parse_duration(raw)
    except ValueError as e:
        raise ValueError(f"{key} is not a duration: {raw!r}") from e


# ------------------------------- config -------------------------------------


@dataclass(frozen=True)
class LimitsConfig:
    """
    Explicit work bounds (there is no cooperative cancellation).

    - max_validators: largest roster a header may be checked against
    - max_proof_depth: most sibling steps a state proof may carry
    """
    max_validators: int = 1024
    max_proof_depth: int = 64

    def validate(self) -> None:
        if self.max_validators < 1:
            raise ValueError("max_validators must be >= 1")
        if not (1 <= self.max_proof_depth <= 256):
            raise ValueError("max_proof_depth must be in 1..256")


@dataclass(frozen=True)
class VerifierConfig:
    signature_workers: int = 1

    def validate(self) -> None:
        if not (1 <= self.signature_workers <= 256):
            raise ValueError("signature_workers must be in 1..256")


@dataclass(frozen=True)
class DefaultsConfig:
    """Defaults used when building a fresh ClientState (nanoseconds)."""
    trusting_period: int = 14 * 86400 * NANOS_PER_SECOND
    max_clock_drift: int = 86400 * NANOS_PER_SECOND

    def validate(self) -> None:
        if self.trusting_period <= 0:
            raise ValueError("trusting_period must be > 0")
        if self.max_clock_drift < 0:
            raise ValueError("max_clock_drift must be >= 0")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "auto"

    def validate(self) -> None:
        if self.level.upper() not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"):
            raise ValueError(f"unknown log level {self.level!r}")
        if self.format not in ("json", "text", "auto"):
            raise ValueError("log format must be json, text or auto")


@dataclass(frozen=True)
class LightClientConfig:
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    verifier: VerifierConfig = field(default_factory=VerifierConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        self.limits.validate()
        self.verifier.validate()
        self.defaults.validate()
        self.logging.validate()

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


# ------------------------------- loader -------------------------------------


def _load_from_env() -> LightClientConfig:
    limits = LimitsConfig(
        max_validators=_getenv_int("LIGHTCLIENT_MAX_VALIDATORS", 1024),
        max_proof_depth=_getenv_int("LIGHTCLIENT_MAX_PROOF_DEPTH", 64),
    )
    verifier = VerifierConfig(signature_workers=_getenv_int("LIGHTCLIENT_SIGNATURE_WORKERS", 1))
    defaults = DefaultsConfig(
        trusting_period=_getenv_duration("LIGHTCLIENT_TRUSTING_PERIOD", "14d"),
        max_clock_drift=_getenv_duration("LIGHTCLIENT_MAX_CLOCK_DRIFT", "1d"),
    )
    log_cfg = LoggingConfig(
        level=(_getenv("LIGHTCLIENT_LOG_LEVEL", "INFO") or "INFO").upper(),
        format=(_getenv("LIGHTCLIENT_LOG_FORMAT", "auto") or "auto").lower(),
    )
    cfg = LightClientConfig(limits=limits, verifier=verifier, defaults=defaults, logging=log_cfg)
    cfg.validate()
    return cfg


@lru_cache(maxsize=1)
def get_config() -> LightClientConfig:
    """
    Process-wide configuration, read from the environment on first use.
    `get_config.cache_clear()` forces a re-read.
    """
    try:
        return _load_from_env()
    except ValueError as e:
        raise ConfigError(str(e)) from e


__all__ = [
    "NANOS_PER_SECOND",
    "parse_duration",
    "LimitsConfig",
    "VerifierConfig",
    "DefaultsConfig",
    "LoggingConfig",
    "LightClientConfig",
    "get_config",
]
