"""
lightclient.codec.borsh
=======================

Compact deterministic binary form used for commitments and host storage.

Layout rules (the source chain's Borsh conventions):
- integers are little-endian, fixed width (u8/u32/u64/u128)
- fixed-size hashes are written raw
- byte strings, strings and sequences carry a u32 length prefix
- Option<T> is a u8 0/1 followed by T when present
- enum variants are a u8 tag followed by the payload

There are no type tags: the caller always knows which type it is decoding.
Decoding is strict: truncated input, bad option/enum tags, invalid UTF-8
and trailing bytes all raise `DecodeError`, never a partially built value.

Value types plug in by implementing::

    def write(self, w: Writer) -> None: ...
    @classmethod
    def read(cls, r: Reader) -> "Self": ...
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence, Type, TypeVar

from ..errors import DecodeError, LightClientError

T = TypeVar("T")

_U32_MAX = (1 << 32) - 1
_U64_MAX = (1 << 64) - 1
_U128_MAX = (1 << 128) - 1


# -----------------------------------------------------------------------------
# Writer
# -----------------------------------------------------------------------------


class Writer:
    __slots__ = ("_out",)

    def __init__(self) -> None:
        self._out = bytearray()

    def getvalue(self) -> bytes:
        return bytes(self._out)

    def _uint(self, v: int, width: int, hi: int) -> None:
        if not isinstance(v, int) or isinstance(v, bool) or not (0 <= v <= hi):
            raise ValueError(f"u{width * 8} out of range: {v!r}")
        self._out += v.to_bytes(width, "little")

    def u8(self, v: int) -> None:
        self._uint(v, 1, 0xFF)

    def u32(self, v: int) -> None:
        self._uint(v, 4, _U32_MAX)

    def u64(self, v: int) -> None:
        self._uint(v, 8, _U64_MAX)

    def u128(self, v: int) -> None:
        self._uint(v, 16, _U128_MAX)

    def fixed(self, data: bytes, size: int) -> None:
        if len(data) != size:
            raise ValueError(f"expected {size} bytes, got {len(data)}")
        self._out += data

    def bytes_(self, data: bytes) -> None:
        self.u32(len(data))
        self._out += data

    def string(self, s: str) -> None:
        self.bytes_(s.encode("utf-8"))

    def option(self, value: Optional[T], fn: Callable[[T], None]) -> None:
        if value is None:
            self.u8(0)
        else:
            self.u8(1)
            fn(value)

    def seq(self, items: Sequence[T], fn: Callable[[T], None]) -> None:
        self.u32(len(items))
        for item in items:
            fn(item)


# -----------------------------------------------------------------------------
# Reader
# -----------------------------------------------------------------------------


class Reader:
    __slots__ = ("b", "i", "n")

    def __init__(self, b: bytes):
        self.b = memoryview(b)
        self.i = 0
        self.n = len(b)

    @property
    def remaining(self) -> int:
        return self.n - self.i

    def get(self, k: int) -> bytes:
        if self.i + k > self.n:
            raise DecodeError("truncated", offset=self.i, wanted=k)
        out = self.b[self.i:self.i + k].tobytes()
        self.i += k
        return out

    def u8(self) -> int:
        return self.get(1)[0]

    def u32(self) -> int:
        return int.from_bytes(self.get(4), "little")

    def u64(self) -> int:
        return int.from_bytes(self.get(8), "little")

    def u128(self) -> int:
        return int.from_bytes(self.get(16), "little")

    def fixed(self, size: int) -> bytes:
        return self.get(size)

    def bytes_(self) -> bytes:
        return self.get(self.u32())

    def string(self) -> str:
        raw = self.bytes_()
        try:
            return raw.decode("utf-8", "strict")
        except UnicodeDecodeError as e:
            raise DecodeError(f"invalid UTF-8: {e}") from e

    def option(self, fn: Callable[[], T]) -> Optional[T]:
        tag = self.u8()
        if tag == 0:
            return None
        if tag == 1:
            return fn()
        raise DecodeError("invalid option tag", tag=tag, offset=self.i - 1)

    def seq(self, fn: Callable[[], T]) -> List[T]:
        count = self.u32()
        # every encoded item occupies at least one byte
        if count > self.remaining:
            raise DecodeError("sequence length exceeds input", count=count)
        return [fn() for _ in range(count)]

    def finish(self) -> None:
        if self.i != self.n:
            raise DecodeError("trailing bytes", offset=self.i, extra=self.n - self.i)


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------


def encode(value: Any) -> bytes:
    """Compact encoding of a value type implementing `write`."""
    w = Writer()
    value.write(w)
    return w.getvalue()


def decode(cls: Type[T], data: bytes) -> T:
    """
    Strict decode of `data` as `cls`. Constructor validation failures
    (ValueError/TypeError) are reported as DecodeError.
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise DecodeError("expected bytes", got=type(data).__name__)
    r = Reader(bytes(data))
    try:
        value = cls.read(r)  # type: ignore[attr-defined]
        r.finish()
    except LightClientError:
        raise
    except (ValueError, TypeError) as e:
        raise DecodeError(str(e), type=cls.__name__) from e
    return value


__all__ = ["Writer", "Reader", "encode", "decode"]
