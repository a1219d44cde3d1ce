"""
lightclient.codec

Two wire forms for the same logical values:

- `borsh`  compact deterministic binary (no tags) for commitments and storage
- `cbor`   self-describing tagged envelopes for cross-chain messages

`to_json` derives a human-readable view for introspection only.
"""

from __future__ import annotations

from typing import Any

from . import borsh, cbor

FORMATS = ("compact", "tagged")


def to_json(obj: Any) -> Any:
    """Recursively convert a field map to JSON-safe values (bytes → 0x-hex)."""
    if hasattr(obj, "to_obj"):
        obj = obj.to_obj()
    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()
    if isinstance(obj, dict):
        return {k: to_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_json(v) for v in obj]
    # stakes are u128 and overflow JSON consumers that parse into doubles
    if isinstance(obj, int) and not isinstance(obj, bool) and obj > (1 << 53):
        return str(obj)
    return obj


def encode(value: Any, fmt: str = "compact") -> bytes:
    if fmt == "compact":
        return borsh.encode(value)
    if fmt == "tagged":
        return cbor.encode(value)
    raise ValueError(f"unknown format {fmt!r}; expected one of {FORMATS}")


def decode(cls: type, data: bytes, fmt: str = "compact") -> Any:
    if fmt == "compact":
        return borsh.decode(cls, data)
    if fmt == "tagged":
        return cbor.decode(data, expected=cls)
    raise ValueError(f"unknown format {fmt!r}; expected one of {FORMATS}")


__all__ = ["borsh", "cbor", "FORMATS", "to_json", "encode", "decode"]
