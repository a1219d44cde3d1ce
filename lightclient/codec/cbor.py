"""
lightclient.codec.cbor

Self-describing tagged form for messages exchanged between chains.

Every message is a canonical CBOR (RFC 8949 §4.2.1) map::

    {"@type": "/lightclients.near.v1.Header", "value": {...field map...}}

Field maps use text keys only and are schema-evolvable by name. Decoding is
strict about:

- the envelope shape (exactly "@type" and "value"),
- the type URL (must be registered, and match the expected type if given),
- field names and field types (no missing, extra or mistyped fields),
- canonical form: the decoded value must re-encode to the exact input bytes.

Any violation is a DecodeError; nothing partially populated escapes.

Public API
----------
- dumps_canonical(obj) -> bytes
- loads(data) -> Any
- register(name) -> class decorator
- encode(value) -> bytes
- decode(data, expected=None) -> value
"""

from __future__ import annotations

from io import BytesIO
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Type, TypeVar

import cbor2

from ..errors import DecodeError, LightClientError

T = TypeVar("T")

TYPE_URL_PREFIX = "/lightclients.near.v1."

_REGISTRY: Dict[str, type] = {}

# --------------------------------------------------------------------------------------
# Raw CBOR
# --------------------------------------------------------------------------------------


def dumps_canonical(obj: Any) -> bytes:
    bio = BytesIO()
    enc = cbor2.CBOREncoder(bio, canonical=True)
    enc.encode(obj)
    return bio.getvalue()


def loads(data: bytes) -> Any:
    try:
        return cbor2.loads(bytes(data))
    except (cbor2.CBORDecodeError, ValueError, TypeError, EOFError, OverflowError) as e:
        raise DecodeError(f"invalid CBOR: {e}") from e


# --------------------------------------------------------------------------------------
# Type registry
# --------------------------------------------------------------------------------------


def register(name: str) -> Callable[[Type[T]], Type[T]]:
    """Class decorator binding a value type to its type URL."""

    def deco(cls: Type[T]) -> Type[T]:
        url = TYPE_URL_PREFIX + name
        if url in _REGISTRY and _REGISTRY[url] is not cls:
            raise ValueError(f"duplicate type url {url}")
        _REGISTRY[url] = cls
        cls.TYPE_URL = url  # type: ignore[attr-defined]
        return cls

    return deco


def type_for(url: str) -> type:
    try:
        return _REGISTRY[url]
    except KeyError:
        raise DecodeError("unknown type url", type_url=url) from None


def registered() -> Dict[str, type]:
    return dict(_REGISTRY)


# --------------------------------------------------------------------------------------
# Envelopes
# --------------------------------------------------------------------------------------


def encode(value: Any) -> bytes:
    url = getattr(type(value), "TYPE_URL", None)
    if url is None:
        raise TypeError(f"{type(value).__name__} has no type url")
    return dumps_canonical({"@type": url, "value": value.to_obj()})


def decode(data: bytes, expected: Optional[Type[T]] = None) -> T:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise DecodeError("expected bytes", got=type(data).__name__)
    raw = bytes(data)
    env = loads(raw)
    url, body = fields(env, ("@type", "value"), where="envelope")
    if not isinstance(url, str):
        raise DecodeError("type url must be text")
    cls = type_for(url)
    if expected is not None and cls is not expected:
        raise DecodeError(
            "unexpected message type",
            expected=getattr(expected, "TYPE_URL", expected.__name__),
            got=url,
        )
    try:
        value = cls.from_obj(body)  # type: ignore[attr-defined]
    except LightClientError:
        raise
    except (ValueError, TypeError) as e:
        raise DecodeError(str(e), type_url=url) from e
    if encode(value) != raw:
        raise DecodeError("non-canonical encoding", type_url=url)
    return value  # type: ignore[return-value]


# --------------------------------------------------------------------------------------
# Field map helpers (used by value types' from_obj)
# --------------------------------------------------------------------------------------


def fields(obj: Any, names: Iterable[str], *, where: str = "value") -> Tuple[Any, ...]:
    """Return the values of `names` from a map holding exactly those keys."""
    names = tuple(names)
    if not isinstance(obj, dict):
        raise DecodeError(f"{where} must be a map", got=type(obj).__name__)
    keys = set(obj.keys())
    if keys != set(names):
        raise DecodeError(
            f"{where} has wrong fields",
            missing=sorted(set(names) - keys),
            extra=sorted(str(k) for k in keys - set(names)),
        )
    return tuple(obj[n] for n in names)


def as_int(v: Any, name: str) -> int:
    if not isinstance(v, int) or isinstance(v, bool) or v < 0:
        raise DecodeError(f"{name} must be an unsigned integer")
    return v


def as_bytes(v: Any, name: str, size: Optional[int] = None) -> bytes:
    if not isinstance(v, bytes):
        raise DecodeError(f"{name} must be a byte string")
    if size is not None and len(v) != size:
        raise DecodeError(f"{name} must be {size} bytes", got=len(v))
    return v


def as_str(v: Any, name: str) -> str:
    if not isinstance(v, str):
        raise DecodeError(f"{name} must be text")
    return v


def as_list(v: Any, name: str) -> list:
    if not isinstance(v, list):
        raise DecodeError(f"{name} must be an array")
    return v


__all__ = [
    "TYPE_URL_PREFIX",
    "dumps_canonical",
    "loads",
    "register",
    "type_for",
    "registered",
    "encode",
    "decode",
    "fields",
    "as_int",
    "as_bytes",
    "as_str",
    "as_list",
]
