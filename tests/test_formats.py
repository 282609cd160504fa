from __future__ import annotations

import base64
import json

import base58
import pytest

from coldsign.codec import encode_transaction
from coldsign.errors import AmbiguousOrUnrecognizedTextEncoding, DecodeError, IndexOutOfRange
from coldsign.formats import TextFormat, decode_bytes, decode_text, detect_and_decode, encode_text
from coldsign.keys import AccountKey, Signature
from coldsign.model import (
    AddressTableLookup,
    Instruction,
    Message,
    MessageHeader,
    MessageVersion,
    Transaction,
)

BLOCKHASH = bytes([7]) * 32


def _key(n: int) -> AccountKey:
    return AccountKey(bytes([n]) * 32)


def _transaction(version: MessageVersion = MessageVersion.LEGACY) -> Transaction:
    lookups = (AddressTableLookup(_key(8), (0,), (1,)),) if version is MessageVersion.V0 else ()
    message = Message(
        header=MessageHeader(2, 0, 1),
        account_keys=(_key(1), _key(2), _key(3)),
        recent_blockhash=BLOCKHASH,
        instructions=(Instruction(2, (0, 1), b"\x02\x00\x00\x00"),),
        address_table_lookups=lookups,
        version=version,
    )
    return Transaction(message=message, signatures=(Signature(bytes([5]) * 64), Signature.empty()))


@pytest.mark.parametrize("version", [MessageVersion.LEGACY, MessageVersion.V0])
def test_auto_detects_all_three_encodings(version: MessageVersion) -> None:
    tx = _transaction(version)
    raw = encode_transaction(tx)
    forms = {
        TextFormat.JSON: encode_text(tx, TextFormat.JSON),
        TextFormat.BASE64: base64.b64encode(raw).decode(),
        TextFormat.BASE58: base58.b58encode(raw).decode(),
    }

    for expected_format, text in forms.items():
        decoded, detected = detect_and_decode(text)
        assert decoded == tx
        assert detected is expected_format


def test_explicit_hint_only_tries_that_decoder() -> None:
    text = base64.b64encode(encode_transaction(_transaction())).decode()

    assert decode_text(text, "base64") == _transaction()
    with pytest.raises(DecodeError):
        decode_text(text, "json")


def test_partial_consumption_is_rejected() -> None:
    text = base64.b64encode(encode_transaction(_transaction()) + b"\x00").decode()

    with pytest.raises(AmbiguousOrUnrecognizedTextEncoding):
        decode_text(text)


def test_unrecognized_text_lists_every_attempt() -> None:
    with pytest.raises(AmbiguousOrUnrecognizedTextEncoding) as excinfo:
        decode_text("definitely not a transaction!")

    message = str(excinfo.value)
    assert "json" in message and "base64" in message and "base58" in message


def test_json_wrapper_carries_metadata() -> None:
    payload = json.loads(encode_text(_transaction(MessageVersion.V0), "json"))

    assert payload["encoding"] == "base64"
    assert payload["version"] == "v0"
    assert payload["signatures"][1] is None
    assert payload["account_keys"][0] == _key(1).to_base58()
    assert payload["address_table_lookups"][0]["writable_indexes"] == [0]


def test_json_wrapper_accepts_base58_payload() -> None:
    raw = encode_transaction(_transaction())
    text = json.dumps({"encoding": "base58", "transaction": base58.b58encode(raw).decode()})

    assert decode_text(text) == _transaction()


def test_ui_json_with_camel_case_fields() -> None:
    tx = _transaction(MessageVersion.V0)
    payload = {
        "signatures": [tx.signatures[0].to_base58(), None],
        "message": {
            "header": {
                "numRequiredSignatures": 2,
                "numReadonlySignedAccounts": 0,
                "numReadonlyUnsignedAccounts": 1,
            },
            "accountKeys": [key.to_base58() for key in tx.message.account_keys],
            "recentBlockhash": base58.b58encode(BLOCKHASH).decode(),
            "instructions": [
                {
                    "programIdIndex": 2,
                    "accounts": [0, 1],
                    "data": base58.b58encode(b"\x02\x00\x00\x00").decode(),
                }
            ],
            "addressTableLookups": [
                {"accountKey": _key(8).to_base58(), "writableIndexes": [0], "readonlyIndexes": [1]}
            ],
        },
    }

    decoded, detected = detect_and_decode(json.dumps(payload))

    assert detected is TextFormat.JSON
    assert decoded == tx


def test_decode_bytes_accepts_raw_binary() -> None:
    raw = encode_transaction(_transaction())
    # 0xff never appears in utf-8 text
    raw_with_binary = raw.replace(bytes([5]) * 64, bytes([0xFF]) * 64)

    decoded, detected = decode_bytes(raw_with_binary)

    assert detected is None
    assert decoded.signatures[0] == Signature(bytes([0xFF]) * 64)


def test_decode_bytes_strips_surrounding_whitespace() -> None:
    text = base64.b64encode(encode_transaction(_transaction())).decode()

    decoded, detected = decode_bytes(f"\n  {text}\n".encode())

    assert decoded == _transaction()
    assert detected is TextFormat.BASE64


def test_ui_json_negative_program_index_is_rejected() -> None:
    tx = _transaction()
    payload = {
        "signatures": [None, None],
        "message": {
            "header": {
                "numRequiredSignatures": 2,
                "numReadonlySignedAccounts": 0,
                "numReadonlyUnsignedAccounts": 1,
            },
            "accountKeys": [key.to_base58() for key in tx.message.account_keys],
            "recentBlockhash": base58.b58encode(BLOCKHASH).decode(),
            "instructions": [{"programIdIndex": -1, "accounts": [0], "data": ""}],
        },
    }

    with pytest.raises(IndexOutOfRange):
        decode_text(json.dumps(payload), "json")
