"""Fixed-size primitives: account keys, signatures and base58 helpers."""

from __future__ import annotations

from dataclasses import dataclass

import base58

from .errors import InvalidSignatureEncoding

PUBKEY_SIZE = 32
SIGNATURE_SIZE = 64


def b58encode(data: bytes) -> str:
    return base58.b58encode(data).decode("ascii")


def b58decode(text: str) -> bytes:
    """Decode base58 text, raising :class:`InvalidSignatureEncoding` on bad input."""

    try:
        return base58.b58decode(text.strip())
    except ValueError as exc:
        raise InvalidSignatureEncoding(f"invalid base58 string: {text!r}") from exc


@dataclass(frozen=True, order=True)
class AccountKey:
    """A 32-byte account identifier."""

    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, (bytes, bytearray)) or len(self.raw) != PUBKEY_SIZE:
            raise InvalidSignatureEncoding(
                f"account key must be {PUBKEY_SIZE} bytes, got {len(self.raw)}"
            )
        object.__setattr__(self, "raw", bytes(self.raw))

    @classmethod
    def from_base58(cls, text: str) -> "AccountKey":
        raw = b58decode(text)
        if len(raw) != PUBKEY_SIZE:
            raise InvalidSignatureEncoding(
                f"{text!r} decodes to {len(raw)} bytes, expected {PUBKEY_SIZE}"
            )
        return cls(raw)

    def to_base58(self) -> str:
        return b58encode(self.raw)

    def __str__(self) -> str:
        return self.to_base58()

    def __repr__(self) -> str:
        return f"AccountKey({self.to_base58()})"


@dataclass(frozen=True)
class Signature:
    """A 64-byte Ed25519 signature; all zeroes marks an unfilled slot."""

    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, (bytes, bytearray)) or len(self.raw) != SIGNATURE_SIZE:
            raise InvalidSignatureEncoding(
                f"signature must be {SIGNATURE_SIZE} bytes, got {len(self.raw)}"
            )
        object.__setattr__(self, "raw", bytes(self.raw))

    @classmethod
    def empty(cls) -> "Signature":
        return cls(bytes(SIGNATURE_SIZE))

    @classmethod
    def from_base58(cls, text: str) -> "Signature":
        raw = b58decode(text)
        if len(raw) != SIGNATURE_SIZE:
            raise InvalidSignatureEncoding(
                f"signature decodes to {len(raw)} bytes, expected {SIGNATURE_SIZE}"
            )
        return cls(raw)

    @property
    def is_empty(self) -> bool:
        return not any(self.raw)

    def to_base58(self) -> str:
        return b58encode(self.raw)

    def __str__(self) -> str:
        return self.to_base58()
