"""Offline expansion of address lookup tables into a resolved account list."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping, Sequence, Tuple

from .errors import DecodeError, LookupIndexOutOfRange, UnknownLookupTable
from .keys import AccountKey
from .model import Message, Transaction

logger = logging.getLogger(__name__)

LookupTables = Mapping[AccountKey, Sequence[AccountKey]]


@dataclass(frozen=True)
class ResolvedContext:
    """Static keys followed by lookup-loaded writable then read-only keys."""

    message: Message
    account_keys: Tuple[AccountKey, ...]
    writable_loaded: int = 0
    readonly_loaded: int = 0
    resolved: bool = True

    def __len__(self) -> int:
        return len(self.account_keys)

    def __getitem__(self, index: int) -> AccountKey:
        return self.account_keys[index]

    def get(self, index: int) -> AccountKey | None:
        if 0 <= index < len(self.account_keys):
            return self.account_keys[index]
        return None

    @property
    def static_count(self) -> int:
        return len(self.message.account_keys)

    def is_signer(self, index: int) -> bool:
        return index < self.message.header.num_required_signatures

    def is_writable(self, index: int) -> bool:
        header = self.message.header
        static = self.static_count
        if index < header.num_required_signatures:
            return index < header.num_required_signatures - header.num_readonly_signed_accounts
        if index < static:
            return index < static - header.num_readonly_unsigned_accounts
        return index < static + self.writable_loaded


def static_context(message: Message) -> ResolvedContext:
    """Context made of static keys only, flagged unresolved if lookups exist."""

    return ResolvedContext(
        message=message,
        account_keys=message.account_keys,
        resolved=not message.address_table_lookups,
    )


def resolve(transaction: Transaction | Message, tables: LookupTables | None = None) -> ResolvedContext:
    """Expand every lookup of a V0 message using the supplied table snapshot.

    Raises :class:`UnknownLookupTable` for tables absent from ``tables`` and
    :class:`LookupIndexOutOfRange` for indices outside a table.
    """

    message = transaction.message if isinstance(transaction, Transaction) else transaction
    if not message.address_table_lookups:
        return static_context(message)

    tables = tables or {}
    writable: List[AccountKey] = []
    readonly: List[AccountKey] = []
    for lookup in message.address_table_lookups:
        addresses = tables.get(lookup.account_key)
        if addresses is None:
            raise UnknownLookupTable(lookup.account_key)
        for indexes, target in (
            (lookup.writable_indexes, writable),
            (lookup.readonly_indexes, readonly),
        ):
            for index in indexes:
                if not 0 <= index < len(addresses):
                    raise LookupIndexOutOfRange(lookup.account_key, index, len(addresses))
                target.append(addresses[index])

    logger.debug(
        "resolved %d lookup tables: %d writable, %d read-only addresses",
        len(message.address_table_lookups),
        len(writable),
        len(readonly),
    )
    return ResolvedContext(
        message=message,
        account_keys=message.account_keys + tuple(writable) + tuple(readonly),
        writable_loaded=len(writable),
        readonly_loaded=len(readonly),
    )


def parse_lookup_tables(payload: Any) -> dict[AccountKey, Tuple[AccountKey, ...]]:
    """Build a table mapping from ``{"<alt base58>": ["<addr base58>", ...]}``."""

    if not isinstance(payload, Mapping):
        raise DecodeError("lookup tables must be a JSON object keyed by table address")
    tables: dict[AccountKey, Tuple[AccountKey, ...]] = {}
    for table, addresses in payload.items():
        if not isinstance(addresses, list):
            raise DecodeError(f"lookup table {table} must map to an array of addresses")
        tables[AccountKey.from_base58(table)] = tuple(
            AccountKey.from_base58(address) for address in addresses
        )
    return tables


def load_lookup_tables(path: str | Path) -> dict[AccountKey, Tuple[AccountKey, ...]]:
    path = Path(path).expanduser()
    try:
        payload = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise DecodeError(f"invalid JSON in lookup tables file {path}: {exc.msg}") from exc
    return parse_lookup_tables(payload)
