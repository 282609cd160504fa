"""In-memory transaction model for legacy and V0 messages."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Sequence, Tuple

from .errors import IndexOutOfRange, MalformedHeader
from .keys import AccountKey, Signature

MAX_HEADER_COUNT = 0xFF
# the first byte of a legacy message doubles as the version marker when its high bit is set
MAX_LEGACY_SIGNERS = 0x7F
MAX_LOOKUP_INDEX = 0xFF


class MessageVersion(str, Enum):
    """Wire variants understood by the codec."""

    LEGACY = "legacy"
    V0 = "v0"


@dataclass(frozen=True)
class MessageHeader:
    """Signer and read-only account counts that prefix every message."""

    num_required_signatures: int
    num_readonly_signed_accounts: int
    num_readonly_unsigned_accounts: int

    def validate(self, static_account_count: int) -> None:
        for name in (
            "num_required_signatures",
            "num_readonly_signed_accounts",
            "num_readonly_unsigned_accounts",
        ):
            count = getattr(self, name)
            if not 0 <= count <= MAX_HEADER_COUNT:
                raise MalformedHeader(f"header {name} {count} is outside 0..{MAX_HEADER_COUNT}")
        if self.num_required_signatures > static_account_count:
            raise MalformedHeader(
                f"header requires {self.num_required_signatures} signatures but only "
                f"{static_account_count} static accounts are present"
            )
        if self.num_readonly_signed_accounts > self.num_required_signatures:
            raise MalformedHeader(
                f"{self.num_readonly_signed_accounts} read-only signed accounts exceed "
                f"{self.num_required_signatures} required signatures"
            )
        unsigned = static_account_count - self.num_required_signatures
        if self.num_readonly_unsigned_accounts > unsigned:
            raise MalformedHeader(
                f"{self.num_readonly_unsigned_accounts} read-only unsigned accounts exceed "
                f"{unsigned} unsigned accounts"
            )


@dataclass(frozen=True)
class Instruction:
    """A compiled instruction; indices point into the resolved account list."""

    program_id_index: int
    accounts: Tuple[int, ...] = ()
    data: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "accounts", tuple(self.accounts))
        object.__setattr__(self, "data", bytes(self.data))


@dataclass(frozen=True)
class AddressTableLookup:
    """Indices into one address lookup table, split by writability."""

    account_key: AccountKey
    writable_indexes: Tuple[int, ...] = ()
    readonly_indexes: Tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "writable_indexes", tuple(self.writable_indexes))
        object.__setattr__(self, "readonly_indexes", tuple(self.readonly_indexes))

    @property
    def address_count(self) -> int:
        return len(self.writable_indexes) + len(self.readonly_indexes)


@dataclass(frozen=True)
class Message:
    """Header, static accounts, blockhash, instructions and optional lookups."""

    header: MessageHeader
    account_keys: Tuple[AccountKey, ...]
    recent_blockhash: bytes
    instructions: Tuple[Instruction, ...] = ()
    address_table_lookups: Tuple[AddressTableLookup, ...] = ()
    version: MessageVersion = MessageVersion.LEGACY

    def __post_init__(self) -> None:
        object.__setattr__(self, "account_keys", tuple(self.account_keys))
        object.__setattr__(self, "instructions", tuple(self.instructions))
        object.__setattr__(self, "address_table_lookups", tuple(self.address_table_lookups))
        object.__setattr__(self, "recent_blockhash", bytes(self.recent_blockhash))

    @property
    def is_versioned(self) -> bool:
        return self.version is MessageVersion.V0

    @property
    def lookup_address_count(self) -> int:
        return sum(lookup.address_count for lookup in self.address_table_lookups)

    @property
    def total_account_count(self) -> int:
        """Static accounts plus every address loaded through lookups."""

        return len(self.account_keys) + self.lookup_address_count

    @property
    def required_signers(self) -> Tuple[AccountKey, ...]:
        return self.account_keys[: self.header.num_required_signatures]

    def validate(self) -> None:
        """Check header counts and instruction indices against account bounds."""

        self.header.validate(len(self.account_keys))
        if not self.is_versioned and self.header.num_required_signatures > MAX_LEGACY_SIGNERS:
            raise MalformedHeader(
                f"legacy messages support at most {MAX_LEGACY_SIGNERS} required signatures, "
                f"got {self.header.num_required_signatures}"
            )
        if self.address_table_lookups and not self.is_versioned:
            raise IndexOutOfRange("legacy messages cannot carry address table lookups")
        for lookup in self.address_table_lookups:
            for table_index in lookup.writable_indexes + lookup.readonly_indexes:
                if not 0 <= table_index <= MAX_LOOKUP_INDEX:
                    raise IndexOutOfRange(
                        f"lookup table {lookup.account_key} index {table_index} "
                        f"is outside 0..{MAX_LOOKUP_INDEX}"
                    )
        bound = self.total_account_count
        for position, instruction in enumerate(self.instructions):
            if not 0 <= instruction.program_id_index < bound:
                raise IndexOutOfRange(
                    f"instruction {position} program index {instruction.program_id_index} "
                    f"is out of range for {bound} accounts"
                )
            for account_index in instruction.accounts:
                if not 0 <= account_index < bound:
                    raise IndexOutOfRange(
                        f"instruction {position} account index {account_index} "
                        f"is out of range for {bound} accounts"
                    )


@dataclass(frozen=True)
class Transaction:
    """A message plus its positionally aligned signature slots."""

    message: Message
    signatures: Tuple[Signature, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "signatures", tuple(self.signatures))

    @property
    def version(self) -> MessageVersion:
        return self.message.version

    @classmethod
    def unsigned(cls, message: Message) -> "Transaction":
        """Build a transaction with an empty slot for every required signer."""

        slots = tuple(Signature.empty() for _ in range(message.header.num_required_signatures))
        return cls(message=message, signatures=slots)

    def with_signature(self, slot: int, signature: Signature) -> "Transaction":
        """Return a copy with ``signature`` written into ``slot``.

        Missing slots below ``slot`` are padded with empty placeholders so
        partially signed transactions stay encodable.
        """

        signatures = list(self.signatures)
        while len(signatures) <= slot:
            signatures.append(Signature.empty())
        signatures[slot] = signature
        return replace(self, signatures=tuple(signatures))

    def signature_pairs(self) -> Sequence[tuple[AccountKey, Signature | None]]:
        pairs: list[tuple[AccountKey, Signature | None]] = []
        for slot, key in enumerate(self.message.required_signers):
            signature = self.signatures[slot] if slot < len(self.signatures) else None
            pairs.append((key, signature))
        return pairs
