"""
Error model of the light client.

Every rejection is a `LightClientError` carrying a stable `code`, a short
message and a JSON-safe `data` mapping (heights as "rev-height" strings,
hashes as 0x-hex, stakes as decimal strings). There is one subclass per
rejection reason, so hosts can write `except InsufficientStake:`.

Verification failures are final for the inputs that caused them. Only
`StoreError` is marked retryable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional, Type, TypeVar


class LightClientErrorCode(str, Enum):
    INTERNAL = "LC/INTERNAL"
    CONFIG = "LC/CONFIG"
    DECODE = "LC/DECODE"

    HEIGHT = "LC/HEIGHT"
    EPOCH_MISMATCH = "LC/EPOCH_MISMATCH"
    INSUFFICIENT_STAKE = "LC/INSUFFICIENT_STAKE"
    INVALID_SIGNATURE = "LC/INVALID_SIGNATURE"
    INVALID_TIMESTAMP = "LC/INVALID_TIMESTAMP"
    INVALID_HEADER = "LC/INVALID_HEADER"
    LIMIT_EXCEEDED = "LC/LIMIT_EXCEEDED"

    PROOF_MISMATCH = "LC/PROOF_MISMATCH"
    EXPIRED_CONSENSUS_STATE = "LC/EXPIRED_CONSENSUS_STATE"

    CLIENT_FROZEN = "LC/CLIENT_FROZEN"
    CLIENT_NOT_FOUND = "LC/CLIENT_NOT_FOUND"
    CLIENT_EXISTS = "LC/CLIENT_EXISTS"
    MISBEHAVIOUR_NOT_PROVEN = "LC/MISBEHAVIOUR_NOT_PROVEN"

    STORE = "LC/STORE"


def _json_safe(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if value is None or isinstance(value, (bool, int, float, str, list, dict)):
        return value
    return str(value)


def _json_map(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _json_safe(v) for k, v in data.items()}


@dataclass(eq=False)
class LightClientError(Exception):
    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        self.data = _json_map(self.data)
        Exception.__init__(self, self.message)

    def _derive(self, **changes: Any) -> "LightClientError":
        # subclasses take different constructor arguments; copy the state instead
        twin = type(self).__new__(type(self))
        twin.__dict__.update(self.__dict__)
        twin.__dict__.update(changes)
        Exception.__init__(twin, *self.args)
        return twin

    def with_context(self, **ctx: Any) -> "LightClientError":
        """Copy of this error with `ctx` merged into `data`."""
        return self._derive(data={**self.data, **_json_map(ctx)})

    def with_cause(self, exc: BaseException) -> "LightClientError":
        return self._derive(cause=exc)

    @property
    def code_str(self) -> str:
        return str(getattr(self.code, "value", self.code))

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "code": self.code_str,
            "message": self.message,
            "data": dict(self.data),
            "retryable": self.retryable,
        }
        if include_cause and self.cause is not None:
            out["cause"] = {"type": type(self.cause).__name__, "message": str(self.cause)}
        return out

    def __str__(self) -> str:
        text = f"{self.code_str}: {self.message}"
        if not self.data:
            return text
        shown = []
        for k, v in self.data.items():
            s = str(v)
            shown.append(f"{k}={s if len(s) <= 96 else s[:96] + '...'}")
        return f"{text} [{', '.join(shown)}]"


class _Reason(LightClientError):
    """Subclass template: a fixed code, a default message and free-form data."""

    CODE: ClassVar[LightClientErrorCode] = LightClientErrorCode.INTERNAL
    DEFAULT_MESSAGE: ClassVar[str] = "internal error"
    RETRYABLE: ClassVar[bool] = False

    def __init__(self, message: Optional[str] = None, **data: Any) -> None:
        super().__init__(
            code=self.CODE,
            message=message or self.DEFAULT_MESSAGE,
            data=data,
            retryable=self.RETRYABLE,
        )


class InternalError(_Reason):
    pass


class ConfigError(_Reason):
    CODE = LightClientErrorCode.CONFIG
    DEFAULT_MESSAGE = "invalid configuration"


class DecodeError(_Reason):
    """Malformed bytes, unknown tags, trailing data or non-canonical input."""

    CODE = LightClientErrorCode.DECODE
    DEFAULT_MESSAGE = "malformed encoding"


class HeightError(_Reason):
    CODE = LightClientErrorCode.HEIGHT
    DEFAULT_MESSAGE = "height out of range"


class EpochMismatch(_Reason):
    """Chain of custody between validator sets is broken."""

    CODE = LightClientErrorCode.EPOCH_MISMATCH
    DEFAULT_MESSAGE = "epoch mismatch"


class InvalidSignature(_Reason):
    CODE = LightClientErrorCode.INVALID_SIGNATURE
    DEFAULT_MESSAGE = "invalid signature"


class InvalidTimestamp(_Reason):
    CODE = LightClientErrorCode.INVALID_TIMESTAMP
    DEFAULT_MESSAGE = "invalid timestamp"


class InvalidHeader(_Reason):
    """Header linkage or commitment fields disagree."""

    CODE = LightClientErrorCode.INVALID_HEADER
    DEFAULT_MESSAGE = "invalid header"


class ProofMismatch(_Reason):
    CODE = LightClientErrorCode.PROOF_MISMATCH
    DEFAULT_MESSAGE = "proof does not match the committed root"


class ExpiredConsensusState(_Reason):
    CODE = LightClientErrorCode.EXPIRED_CONSENSUS_STATE
    DEFAULT_MESSAGE = "consensus state is outside the trusting period"


class MisbehaviourNotProven(_Reason):
    CODE = LightClientErrorCode.MISBEHAVIOUR_NOT_PROVEN
    DEFAULT_MESSAGE = "headers do not constitute misbehaviour"


class StoreError(_Reason):
    CODE = LightClientErrorCode.STORE
    DEFAULT_MESSAGE = "store failure"
    RETRYABLE = True


class InsufficientStake(LightClientError):
    def __init__(self, verified: int, total: int, **data: Any) -> None:
        super().__init__(
            code=LightClientErrorCode.INSUFFICIENT_STAKE,
            message="verified stake is not a strict two-thirds supermajority",
            data={"verified_stake": str(verified), "total_stake": str(total), **data},
        )
        self.verified = verified
        self.total = total


class LimitExceeded(LightClientError):
    def __init__(self, resource: str, limit: int, got: int) -> None:
        super().__init__(
            code=LightClientErrorCode.LIMIT_EXCEEDED,
            message=f"limit exceeded: {resource}",
            data={"resource": resource, "limit": limit, "got": got},
        )


class ClientFrozen(LightClientError):
    def __init__(self, frozen_height: Any, **data: Any) -> None:
        super().__init__(
            code=LightClientErrorCode.CLIENT_FROZEN,
            message="client is frozen",
            data={"frozen_height": frozen_height, **data},
        )


class ClientNotFound(LightClientError):
    def __init__(self, client_id: str) -> None:
        super().__init__(
            code=LightClientErrorCode.CLIENT_NOT_FOUND,
            message="client is not initialised",
            data={"client_id": client_id},
        )


class ClientAlreadyExists(LightClientError):
    def __init__(self, client_id: str) -> None:
        super().__init__(
            code=LightClientErrorCode.CLIENT_EXISTS,
            message="client is already initialised",
            data={"client_id": client_id},
        )


E = TypeVar("E", bound=LightClientError)


def wrap(exc: BaseException, *, as_: Type[E] = InternalError, **ctx: Any) -> E:  # type: ignore[assignment]
    """
    Turn `exc` into a light-client error of type `as_` with `ctx` as data.
    A LightClientError is returned as a copy with `ctx` merged instead.
    """
    if isinstance(exc, LightClientError):
        return exc.with_context(**ctx)  # type: ignore[return-value]
    err = as_(str(exc) or type(exc).__name__, **ctx)  # type: ignore[call-arg]
    return err.with_cause(exc)  # type: ignore[return-value]


__all__ = [
    "LightClientErrorCode",
    "LightClientError",
    "InternalError",
    "ConfigError",
    "DecodeError",
    "HeightError",
    "EpochMismatch",
    "InsufficientStake",
    "InvalidSignature",
    "InvalidTimestamp",
    "InvalidHeader",
    "LimitExceeded",
    "ProofMismatch",
    "ExpiredConsensusState",
    "ClientFrozen",
    "ClientNotFound",
    "ClientAlreadyExists",
    "MisbehaviourNotProven",
    "StoreError",
    "wrap",
]
