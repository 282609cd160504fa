from __future__ import annotations

import json
from pathlib import Path

import pytest

from coldsign.errors import DecodeError, LookupIndexOutOfRange, UnknownLookupTable
from coldsign.keys import AccountKey
from coldsign.lookup_tables import load_lookup_tables, parse_lookup_tables, resolve
from coldsign.model import (
    AddressTableLookup,
    Instruction,
    Message,
    MessageHeader,
    MessageVersion,
    Transaction,
)

A, B, T, X, Y, Z = (AccountKey(bytes([n]) * 32) for n in (1, 2, 10, 20, 21, 22))


def _v0(lookups: tuple[AddressTableLookup, ...]) -> Transaction:
    message = Message(
        header=MessageHeader(1, 0, 1),
        account_keys=(A, B),
        recent_blockhash=bytes(32),
        instructions=(Instruction(1, (0, 2, 3, 4)),),
        address_table_lookups=lookups,
        version=MessageVersion.V0,
    )
    return Transaction.unsigned(message)


def test_writable_block_precedes_readonly_block() -> None:
    tx = _v0((AddressTableLookup(T, (2, 0), (1,)),))

    context = resolve(tx, {T: [X, Y, Z]})

    assert list(context.account_keys) == [A, B, Z, X, Y]
    assert context.writable_loaded == 2
    assert context.readonly_loaded == 1
    assert context.resolved


def test_multiple_lookups_keep_lookup_order_within_each_block() -> None:
    other = AccountKey(bytes([11]) * 32)
    tx = _v0(
        (
            AddressTableLookup(T, (1,), (0,)),
            AddressTableLookup(other, (0,), (1,)),
        )
    )

    context = resolve(tx, {T: [X, Y], other: [Z, A]})

    assert list(context.account_keys) == [A, B, Y, Z, X, A]


def test_unknown_table_names_the_missing_identifier() -> None:
    tx = _v0((AddressTableLookup(T, (0,), ()),))

    with pytest.raises(UnknownLookupTable) as excinfo:
        resolve(tx, {})

    assert excinfo.value.table == T
    assert T.to_base58() in str(excinfo.value)


@pytest.mark.parametrize("writable, readonly", [((3,), ()), ((), (3,))])
def test_index_past_table_end_is_rejected(writable, readonly) -> None:
    tx = _v0((AddressTableLookup(T, writable, readonly),))

    with pytest.raises(LookupIndexOutOfRange) as excinfo:
        resolve(tx, {T: [X, Y, Z]})

    assert excinfo.value.index == 3
    assert excinfo.value.size == 3


def test_no_lookups_is_identity() -> None:
    message = Message(
        header=MessageHeader(1, 0, 0),
        account_keys=(A, B),
        recent_blockhash=bytes(32),
    )

    context = resolve(Transaction.unsigned(message))

    assert context.account_keys == (A, B)
    assert context.resolved


def test_account_roles_follow_header_and_lookup_blocks() -> None:
    tx = _v0((AddressTableLookup(T, (2, 0), (1,)),))
    context = resolve(tx, {T: [X, Y, Z]})

    assert context.is_signer(0) and not context.is_signer(1)
    assert context.is_writable(0)
    assert not context.is_writable(1)  # the single read-only unsigned static key
    assert context.is_writable(2) and context.is_writable(3)
    assert not context.is_writable(4)


def test_parse_lookup_tables_from_json(tmp_path: Path) -> None:
    path = tmp_path / "tables.json"
    path.write_text(json.dumps({T.to_base58(): [X.to_base58(), Y.to_base58()]}))

    tables = load_lookup_tables(path)

    assert tables == {T: (X, Y)}


@pytest.mark.parametrize("payload", [[], {"abc": "not-a-list"}])
def test_parse_lookup_tables_rejects_bad_shapes(payload) -> None:
    with pytest.raises(DecodeError):
        parse_lookup_tables(payload)


@pytest.mark.parametrize("writable, readonly", [((-1,), ()), ((), (-1,))])
def test_negative_lookup_index_does_not_wrap_to_table_end(writable, readonly) -> None:
    tx = _v0((AddressTableLookup(T, writable, readonly),))

    with pytest.raises(LookupIndexOutOfRange) as excinfo:
        resolve(tx, {T: [X, Y, Z]})

    assert excinfo.value.index == -1
