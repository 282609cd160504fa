"""Binary codec for legacy and V0 transactions."""

from __future__ import annotations

import logging
from typing import Callable, List, TypeVar

from .errors import EncodeError, TruncatedInput, UnsupportedVersion
from .keys import PUBKEY_SIZE, SIGNATURE_SIZE, AccountKey, Signature
from .model import (
    MAX_LEGACY_SIGNERS,
    AddressTableLookup,
    Instruction,
    Message,
    MessageHeader,
    MessageVersion,
    Transaction,
)
from .shortvec import decode_length, encode_length

logger = logging.getLogger(__name__)

BLOCKHASH_SIZE = 32
VERSION_PREFIX_MASK = 0x80
SUPPORTED_VERSIONS = {0}

T = TypeVar("T")


class _Reader:
    """Cursor over an immutable byte buffer."""

    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def peek(self, field: str) -> int:
        if self.remaining < 1:
            raise TruncatedInput(field, self.offset, 1)
        return self.data[self.offset]

    def take(self, size: int, field: str) -> bytes:
        if self.remaining < size:
            raise TruncatedInput(field, self.offset, size)
        chunk = self.data[self.offset : self.offset + size]
        self.offset += size
        return chunk

    def u8(self, field: str) -> int:
        return self.take(1, field)[0]

    def length(self) -> int:
        value, consumed = decode_length(self.data, self.offset)
        self.offset += consumed
        return value

    def array(self, field: str, read_item: Callable[[], T]) -> List[T]:
        count = self.length()
        logger.debug("reading %d %s at offset %d", count, field, self.offset)
        return [read_item() for _ in range(count)]

    def byte_array(self, field: str) -> bytes:
        return self.take(self.length(), field)


def _read_message(reader: _Reader) -> Message:
    first = reader.peek("message prefix")
    version = MessageVersion.LEGACY
    if first & VERSION_PREFIX_MASK:
        number = first & 0x7F
        if number not in SUPPORTED_VERSIONS:
            raise UnsupportedVersion(number)
        reader.u8("message prefix")
        version = MessageVersion.V0

    header = MessageHeader(
        num_required_signatures=reader.u8("header.num_required_signatures"),
        num_readonly_signed_accounts=reader.u8("header.num_readonly_signed_accounts"),
        num_readonly_unsigned_accounts=reader.u8("header.num_readonly_unsigned_accounts"),
    )
    account_keys = reader.array(
        "account_keys", lambda: AccountKey(reader.take(PUBKEY_SIZE, "account_key"))
    )
    blockhash = reader.take(BLOCKHASH_SIZE, "recent_blockhash")

    def read_instruction() -> Instruction:
        program_id_index = reader.u8("instruction.program_id_index")
        accounts = reader.byte_array("instruction.accounts")
        data = reader.byte_array("instruction.data")
        return Instruction(program_id_index=program_id_index, accounts=tuple(accounts), data=data)

    instructions = reader.array("instructions", read_instruction)

    lookups: List[AddressTableLookup] = []
    if version is MessageVersion.V0:

        def read_lookup() -> AddressTableLookup:
            key = AccountKey(reader.take(PUBKEY_SIZE, "lookup.account_key"))
            writable = reader.byte_array("lookup.writable_indexes")
            readonly = reader.byte_array("lookup.readonly_indexes")
            return AddressTableLookup(
                account_key=key,
                writable_indexes=tuple(writable),
                readonly_indexes=tuple(readonly),
            )

        lookups = reader.array("address_table_lookups", read_lookup)

    message = Message(
        header=header,
        account_keys=tuple(account_keys),
        recent_blockhash=blockhash,
        instructions=tuple(instructions),
        address_table_lookups=tuple(lookups),
        version=version,
    )
    message.validate()
    return message


def _ensure_consumed(reader: _Reader, what: str) -> None:
    if reader.remaining:
        raise TruncatedInput(f"{what} (trailing bytes)", reader.offset, 0)


def decode_message(data: bytes) -> Message:
    """Decode a bare message, including the version prefix for V0."""

    reader = _Reader(data)
    message = _read_message(reader)
    _ensure_consumed(reader, "message")
    return message


def decode_transaction(data: bytes) -> Transaction:
    """Decode a full transaction: signatures followed by the message."""

    reader = _Reader(data)
    signatures = reader.array(
        "signatures", lambda: Signature(reader.take(SIGNATURE_SIZE, "signature"))
    )
    message = _read_message(reader)
    _ensure_consumed(reader, "transaction")
    logger.debug(
        "decoded %s transaction: %d signatures, %d accounts, %d instructions",
        message.version.value,
        len(signatures),
        len(message.account_keys),
        len(message.instructions),
    )
    return Transaction(message=message, signatures=tuple(signatures))


def _u8(value: int, field: str) -> bytes:
    if not 0 <= value <= 0xFF:
        raise EncodeError(f"{field} value {value} does not fit in one byte")
    return bytes([value])


def _u8_array(values, field: str) -> bytes:
    return encode_length(len(values)) + b"".join(_u8(value, field) for value in values)


def encode_message(message: Message) -> bytes:
    """Encode a message in canonical form; V0 messages get the 0x80 prefix."""

    out = bytearray()
    header = message.header
    if message.is_versioned:
        out.append(VERSION_PREFIX_MASK | 0)
    elif header.num_required_signatures > MAX_LEGACY_SIGNERS:
        raise EncodeError(
            f"legacy header with {header.num_required_signatures} required signatures "
            "would be read back as a versioned message"
        )
    out += _u8(header.num_required_signatures, "header.num_required_signatures")
    out += _u8(header.num_readonly_signed_accounts, "header.num_readonly_signed_accounts")
    out += _u8(header.num_readonly_unsigned_accounts, "header.num_readonly_unsigned_accounts")

    out += encode_length(len(message.account_keys))
    for key in message.account_keys:
        out += key.raw
    if len(message.recent_blockhash) != BLOCKHASH_SIZE:
        raise EncodeError(
            f"recent blockhash must be {BLOCKHASH_SIZE} bytes, got {len(message.recent_blockhash)}"
        )
    out += message.recent_blockhash

    out += encode_length(len(message.instructions))
    for instruction in message.instructions:
        out += _u8(instruction.program_id_index, "instruction.program_id_index")
        out += _u8_array(instruction.accounts, "instruction.accounts")
        out += encode_length(len(instruction.data))
        out += instruction.data

    if message.is_versioned:
        out += encode_length(len(message.address_table_lookups))
        for lookup in message.address_table_lookups:
            out += lookup.account_key.raw
            out += _u8_array(lookup.writable_indexes, "lookup.writable_indexes")
            out += _u8_array(lookup.readonly_indexes, "lookup.readonly_indexes")
    return bytes(out)


def encode_transaction(transaction: Transaction) -> bytes:
    """Encode signatures followed by the message."""

    out = bytearray(encode_length(len(transaction.signatures)))
    for signature in transaction.signatures:
        out += signature.raw
    out += encode_message(transaction.message)
    return bytes(out)
