"""Error taxonomy shared by the codec, resolver, signer and analyzer."""

from __future__ import annotations

from typing import Any


class ColdsignError(ValueError):
    """Base class for every error raised by the core."""


class DecodeError(ColdsignError):
    """Raised when bytes or text cannot be turned into a transaction."""


class MalformedLength(DecodeError):
    """Raised when a compact length is truncated, overlong or out of range."""


class UnsupportedVersion(DecodeError):
    """Raised when a versioned message carries a version other than 0."""

    def __init__(self, version: int) -> None:
        super().__init__(f"unsupported message version {version}")
        self.version = version


class TruncatedInput(DecodeError):
    """Raised when the buffer ends before a field is complete."""

    def __init__(self, field: str, offset: int, needed: int | None = None) -> None:
        detail = f" (need {needed} bytes)" if needed is not None else ""
        super().__init__(f"truncated input reading {field} at offset {offset}{detail}")
        self.field = field
        self.offset = offset


class IndexOutOfRange(DecodeError):
    """Raised when an instruction references a non-existent account position."""


class MalformedHeader(IndexOutOfRange):
    """Raised when header counts do not fit the static account list."""


class InvalidSignatureEncoding(DecodeError):
    """Raised when a signature or key is not valid base58 of the right size."""


class AmbiguousOrUnrecognizedTextEncoding(DecodeError):
    """Raised when no text encoding yields a complete transaction."""


class EncodeError(ColdsignError):
    """Raised when a transaction cannot be expressed in the wire format."""


class ResolutionError(ColdsignError):
    """Raised when address lookup tables cannot be expanded."""


class UnknownLookupTable(ResolutionError):
    """Raised when a lookup references a table missing from the snapshot."""

    def __init__(self, table: Any) -> None:
        super().__init__(f"lookup table {table} not found in the supplied tables")
        self.table = table


class LookupIndexOutOfRange(ResolutionError):
    """Raised when a lookup index is past the end of its table."""

    def __init__(self, table: Any, index: int, size: int) -> None:
        super().__init__(
            f"index {index} is out of range for lookup table {table} with {size} addresses"
        )
        self.table = table
        self.index = index
        self.size = size


class SignError(ColdsignError):
    """Raised when a transaction cannot be signed."""


class SignerNotRequired(SignError):
    """Raised when the signing key is not among the required signers."""

    def __init__(self, pubkey: Any) -> None:
        super().__init__(f"{pubkey} is not a required signer of this transaction")
        self.pubkey = pubkey


class InvalidKeyMaterial(SignError):
    """Raised when private key material cannot be parsed."""


class PolicyError(ColdsignError):
    """Raised when valid input is rejected by an operator policy."""


class FeeExceedsLimit(PolicyError):
    """Raised when the estimated fee is above the configured ceiling."""

    def __init__(self, estimate: int, limit: int) -> None:
        super().__init__(f"estimated fee {estimate} lamports exceeds max fee {limit} lamports")
        self.estimate = estimate
        self.limit = limit
