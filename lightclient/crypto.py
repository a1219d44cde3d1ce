"""
Public keys and signatures for the two schemes block producers may use.

A `Signature` is a tagged variant (scheme tag + raw bytes) with a single
verify contract; the scheme-specific backend is picked from a dispatch table
keyed by the tag, so adding a scheme means adding one table entry.

Schemes
-------
- ed25519    key 32 bytes, signature 64 bytes
- secp256k1  key 64 bytes (uncompressed x||y, no 0x04 prefix),
             signature 65 bytes r||s||v, ECDSA over SHA-256 of the message;
             the recovery byte v is carried but not used for verification

Both backends come from `cryptography`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict

from cryptography.exceptions import InvalidSignature as _CryptoInvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from .codec.borsh import Reader, Writer
from .codec.cbor import as_bytes, as_int, fields
from .errors import DecodeError, InvalidSignature


class KeyType(IntEnum):
    ED25519 = 0
    SECP256K1 = 1


PUBLIC_KEY_LEN: Dict[KeyType, int] = {KeyType.ED25519: 32, KeyType.SECP256K1: 64}
SIGNATURE_LEN: Dict[KeyType, int] = {KeyType.ED25519: 64, KeyType.SECP256K1: 65}

_SCHEME_NAMES = {KeyType.ED25519: "ed25519", KeyType.SECP256K1: "secp256k1"}


def _key_type(tag: Any) -> KeyType:
    try:
        return KeyType(tag)
    except ValueError:
        raise DecodeError("unsupported key type", tag=tag) from None


# ---- values ----


@dataclass(frozen=True)
class PublicKey:
    key_type: KeyType
    data: bytes

    def __post_init__(self) -> None:
        kt = KeyType(self.key_type)
        object.__setattr__(self, "key_type", kt)
        if len(self.data) != PUBLIC_KEY_LEN[kt]:
            raise ValueError(
                f"{_SCHEME_NAMES[kt]} public key must be {PUBLIC_KEY_LEN[kt]} bytes, got {len(self.data)}"
            )

    def write(self, w: Writer) -> None:
        w.u8(int(self.key_type))
        w.fixed(self.data, PUBLIC_KEY_LEN[self.key_type])

    @classmethod
    def read(cls, r: Reader) -> "PublicKey":
        kt = _key_type(r.u8())
        return cls(kt, r.fixed(PUBLIC_KEY_LEN[kt]))

    def to_obj(self) -> Dict[str, Any]:
        return {"key_type": int(self.key_type), "data": self.data}

    @classmethod
    def from_obj(cls, obj: Any) -> "PublicKey":
        kt, data = fields(obj, ("key_type", "data"), where="public_key")
        return cls(_key_type(as_int(kt, "key_type")), as_bytes(data, "data"))

    @classmethod
    def parse(cls, text: str) -> "PublicKey":
        """Parse the `scheme:hex` text form, e.g. `ed25519:ab12…`."""
        scheme, sep, hexdata = text.partition(":")
        if not sep:
            raise ValueError(f"public key must look like scheme:hex, got {text!r}")
        for kt, name in _SCHEME_NAMES.items():
            if name == scheme.lower():
                return cls(kt, bytes.fromhex(hexdata.removeprefix("0x")))
        raise ValueError(f"unknown key scheme {scheme!r}")

    def __str__(self) -> str:
        return f"{_SCHEME_NAMES[self.key_type]}:{self.data.hex()}"


@dataclass(frozen=True)
class Signature:
    key_type: KeyType
    data: bytes

    def __post_init__(self) -> None:
        kt = KeyType(self.key_type)
        object.__setattr__(self, "key_type", kt)
        if len(self.data) != SIGNATURE_LEN[kt]:
            raise ValueError(
                f"{_SCHEME_NAMES[kt]} signature must be {SIGNATURE_LEN[kt]} bytes, got {len(self.data)}"
            )

    def write(self, w: Writer) -> None:
        w.u8(int(self.key_type))
        w.fixed(self.data, SIGNATURE_LEN[self.key_type])

    @classmethod
    def read(cls, r: Reader) -> "Signature":
        kt = _key_type(r.u8())
        return cls(kt, r.fixed(SIGNATURE_LEN[kt]))

    def to_obj(self) -> Dict[str, Any]:
        return {"key_type": int(self.key_type), "data": self.data}

    @classmethod
    def from_obj(cls, obj: Any) -> "Signature":
        kt, data = fields(obj, ("key_type", "data"), where="signature")
        return cls(_key_type(as_int(kt, "key_type")), as_bytes(data, "data"))


# ---- backends ----


def _verify_ed25519(public_key: bytes, message: bytes, signature: bytes) -> None:
    try:
        key = ed25519.Ed25519PublicKey.from_public_bytes(public_key)
    except ValueError as e:
        raise InvalidSignature("malformed ed25519 public key") from e
    try:
        key.verify(signature, message)
    except _CryptoInvalidSignature as e:
        raise InvalidSignature("ed25519 signature does not verify") from e


def _verify_secp256k1(public_key: bytes, message: bytes, signature: bytes) -> None:
    try:
        key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), b"\x04" + public_key)
    except ValueError as e:
        raise InvalidSignature("malformed secp256k1 public key") from e
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    if signature[64] > 3:
        raise InvalidSignature("malformed secp256k1 recovery id", v=signature[64])
    try:
        key.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
    except _CryptoInvalidSignature as e:
        raise InvalidSignature("secp256k1 signature does not verify") from e


_VERIFIERS: Dict[KeyType, Callable[[bytes, bytes, bytes], None]] = {
    KeyType.ED25519: _verify_ed25519,
    KeyType.SECP256K1: _verify_secp256k1,
}


def verify_signature(signature: Signature, message: bytes, public_key: PublicKey) -> None:
    """Raise InvalidSignature unless `signature` is valid for `message` under `public_key`."""
    if signature.key_type != public_key.key_type:
        raise InvalidSignature(
            "signature scheme does not match the validator key",
            signature_scheme=_SCHEME_NAMES[signature.key_type],
            key_scheme=_SCHEME_NAMES[public_key.key_type],
        )
    backend = _VERIFIERS.get(signature.key_type)
    if backend is None:
        raise InvalidSignature("unsupported signature scheme", tag=int(signature.key_type))
    backend(public_key.data, message, signature.data)


__all__ = [
    "KeyType",
    "PUBLIC_KEY_LEN",
    "SIGNATURE_LEN",
    "PublicKey",
    "Signature",
    "verify_signature",
]
