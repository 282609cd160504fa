"""Textual adapters around the binary codec: JSON wrapper, base64 and base58."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from enum import Enum
from typing import Any, Callable, Mapping

from .codec import decode_transaction, encode_transaction
from .errors import (
    AmbiguousOrUnrecognizedTextEncoding,
    ColdsignError,
    DecodeError,
    InvalidSignatureEncoding,
)
from .keys import AccountKey, Signature, b58decode, b58encode
from .model import (
    AddressTableLookup,
    Instruction,
    Message,
    MessageHeader,
    MessageVersion,
    Transaction,
)

logger = logging.getLogger(__name__)

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
_WHITESPACE_RE = re.compile(r"\s+")


class TextFormat(str, Enum):
    """Text encodings accepted for transactions."""

    JSON = "json"
    BASE64 = "base64"
    BASE58 = "base58"


AUTO = "auto"
DETECTION_ORDER = (TextFormat.JSON, TextFormat.BASE64, TextFormat.BASE58)


def _pick(mapping: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in mapping:
            return mapping[name]
    return default


def _decode_base64_strict(text: str) -> bytes:
    compact = _WHITESPACE_RE.sub("", text)
    if not compact or len(compact) % 4 or not _BASE64_RE.match(compact):
        raise DecodeError("input is not canonical base64")
    try:
        return base64.b64decode(compact, validate=True)
    except binascii.Error as exc:
        raise DecodeError(f"invalid base64: {exc}") from exc


def _from_base64(text: str) -> Transaction:
    return decode_transaction(_decode_base64_strict(text))


def _from_base58(text: str) -> Transaction:
    compact = _WHITESPACE_RE.sub("", text)
    if not compact:
        raise DecodeError("empty base58 input")
    return decode_transaction(b58decode(compact))


def _ui_header(raw: Mapping[str, Any]) -> MessageHeader:
    try:
        return MessageHeader(
            num_required_signatures=int(
                _pick(raw, "num_required_signatures", "numRequiredSignatures")
            ),
            num_readonly_signed_accounts=int(
                _pick(raw, "num_readonly_signed_accounts", "numReadonlySignedAccounts")
            ),
            num_readonly_unsigned_accounts=int(
                _pick(raw, "num_readonly_unsigned_accounts", "numReadonlyUnsignedAccounts")
            ),
        )
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"invalid message header: {raw!r}") from exc


def _ui_instruction(raw: Mapping[str, Any]) -> Instruction:
    program_index = _pick(raw, "program_id_index", "programIdIndex")
    if program_index is None:
        raise DecodeError("instruction is missing program_id_index")
    data = raw.get("data", "")
    return Instruction(
        program_id_index=int(program_index),
        accounts=tuple(int(index) for index in raw.get("accounts", [])),
        data=b58decode(data) if data else b"",
    )


def _ui_lookup(raw: Mapping[str, Any]) -> AddressTableLookup:
    return AddressTableLookup(
        account_key=AccountKey.from_base58(_pick(raw, "account_key", "accountKey", default="")),
        writable_indexes=tuple(int(i) for i in _pick(raw, "writable_indexes", "writableIndexes", default=[])),
        readonly_indexes=tuple(int(i) for i in _pick(raw, "readonly_indexes", "readonlyIndexes", default=[])),
    )


def _ui_version(raw: Any, has_lookups: bool) -> MessageVersion:
    if raw is None:
        return MessageVersion.V0 if has_lookups else MessageVersion.LEGACY
    if raw in (0, "0", "v0", "V0"):
        return MessageVersion.V0
    if raw == "legacy":
        return MessageVersion.LEGACY
    raise DecodeError(f"unsupported message version {raw!r}")


def transaction_from_ui_json(payload: Mapping[str, Any]) -> Transaction:
    """Build a transaction from a UI-style object with an inline ``message``."""

    message_raw = payload.get("message")
    if not isinstance(message_raw, Mapping):
        raise DecodeError("JSON transaction has no 'message' object")

    lookups_raw = _pick(message_raw, "address_table_lookups", "addressTableLookups", default=None) or []
    version = _ui_version(_pick(payload, "version", default=message_raw.get("version")), bool(lookups_raw))
    blockhash = _pick(message_raw, "recent_blockhash", "recentBlockhash")
    if not blockhash:
        raise DecodeError("JSON message is missing recent_blockhash")

    message = Message(
        header=_ui_header(message_raw.get("header") or {}),
        account_keys=tuple(
            AccountKey.from_base58(key)
            for key in _pick(message_raw, "account_keys", "accountKeys", default=[])
        ),
        recent_blockhash=AccountKey.from_base58(blockhash).raw,
        instructions=tuple(_ui_instruction(item) for item in message_raw.get("instructions", [])),
        address_table_lookups=tuple(_ui_lookup(item) for item in lookups_raw),
        version=version,
    )
    message.validate()

    signatures = []
    for raw in payload.get("signatures", []):
        signatures.append(Signature.from_base58(raw) if raw else Signature.empty())
    return Transaction(message=message, signatures=tuple(signatures))


def _from_json(text: str) -> Transaction:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise DecodeError("JSON transaction must be an object")

    wrapped = payload.get("transaction")
    if isinstance(wrapped, str):
        encoding = str(payload.get("encoding", TextFormat.BASE64.value)).lower()
        if encoding == TextFormat.BASE64.value:
            return _from_base64(wrapped)
        if encoding == TextFormat.BASE58.value:
            return _from_base58(wrapped)
        raise DecodeError(f"unsupported wrapped encoding {encoding!r}")
    try:
        return transaction_from_ui_json(wrapped if isinstance(wrapped, dict) else payload)
    except ColdsignError:
        raise
    except (TypeError, ValueError, AttributeError) as exc:
        raise DecodeError(f"malformed JSON transaction: {exc}") from exc


_DECODERS: dict[TextFormat, Callable[[str], Transaction]] = {
    TextFormat.JSON: _from_json,
    TextFormat.BASE64: _from_base64,
    TextFormat.BASE58: _from_base58,
}


def detect_and_decode(text: str, hint: str | TextFormat = AUTO) -> tuple[Transaction, TextFormat]:
    """Decode ``text`` and report which format matched.

    With an explicit hint only that decoder runs. With ``auto`` the formats are
    tried in :data:`DETECTION_ORDER`; the first one that consumes the whole
    input wins.
    """

    if hint != AUTO:
        fmt = TextFormat(hint)
        return _DECODERS[fmt](text), fmt

    failures: list[str] = []
    for fmt in DETECTION_ORDER:
        try:
            transaction = _DECODERS[fmt](text)
        except ColdsignError as exc:
            logger.debug("auto-detect: %s rejected input: %s", fmt.value, exc)
            failures.append(f"{fmt.value}: {exc}")
            continue
        logger.debug("auto-detect: matched %s", fmt.value)
        return transaction, fmt
    raise AmbiguousOrUnrecognizedTextEncoding(
        "input is not a recognized transaction encoding (" + "; ".join(failures) + ")"
    )


def decode_text(text: str, hint: str | TextFormat = AUTO) -> Transaction:
    return detect_and_decode(text, hint)[0]


def decode_bytes(data: bytes, hint: str | TextFormat = AUTO) -> tuple[Transaction, TextFormat | None]:
    """Decode file contents; non UTF-8 bytes are read as the raw binary form."""

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        if hint != AUTO:
            raise InvalidSignatureEncoding(f"input is binary but {hint} text was requested")
        return decode_transaction(data), None
    return detect_and_decode(text.strip(), hint)


def transaction_metadata(transaction: Transaction) -> dict[str, Any]:
    """Human-readable fields attached next to the wrapped binary in JSON output."""

    message = transaction.message
    return {
        "version": message.version.value,
        "signatures": [None if sig.is_empty else sig.to_base58() for sig in transaction.signatures],
        "account_keys": [key.to_base58() for key in message.account_keys],
        "recent_blockhash": AccountKey(message.recent_blockhash).to_base58(),
        "address_table_lookups": [
            {
                "account_key": lookup.account_key.to_base58(),
                "writable_indexes": list(lookup.writable_indexes),
                "readonly_indexes": list(lookup.readonly_indexes),
            }
            for lookup in message.address_table_lookups
        ],
    }


def encode_text(transaction: Transaction, fmt: str | TextFormat) -> str:
    """Render a transaction as base64, base58 or the JSON wrapper."""

    fmt = TextFormat(fmt)
    raw = encode_transaction(transaction)
    if fmt is TextFormat.BASE64:
        return base64.b64encode(raw).decode("ascii")
    if fmt is TextFormat.BASE58:
        return b58encode(raw)
    payload = {
        "encoding": TextFormat.BASE64.value,
        "transaction": base64.b64encode(raw).decode("ascii"),
    }
    payload.update(transaction_metadata(transaction))
    return json.dumps(payload, indent=2)
