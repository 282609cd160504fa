from __future__ import annotations

import struct

import pytest

from coldsign.analyzer import AnalysisWarning, analyze
from coldsign.extensions import builtin_registry, default_registry
from coldsign.extensions.light_protocol import (
    ACCOUNT_COMPRESSION_PROGRAM_ID,
    COMPRESSED_TOKEN_PROGRAM_ID,
    LIGHT_SYSTEM_PROGRAM_ID,
    SPL_NOOP_PROGRAM_ID,
    LightProtocolClassifier,
    match_action,
)
from coldsign.findings import MalformedInstructionData, PrivacyClassification
from coldsign.keys import AccountKey
from coldsign.lookup_tables import resolve
from coldsign.model import Instruction, Message, MessageHeader, Transaction

PAYER = AccountKey(bytes([1]) * 32)
UNRELATED = AccountKey(bytes([2]) * 32)

INVOKE = bytes([26, 16, 169, 7, 21, 202, 242, 25])
COMPRESS_SOL = bytes([101, 145, 17, 14, 113, 248, 178, 230])
TRANSFER = bytes([163, 52, 200, 231, 140, 3, 69, 186])
INSERT_INTO_QUEUES = bytes([180, 143, 159, 153, 35, 46, 248, 163])
BATCH_COMPRESS = bytes([65, 206, 101, 37, 147, 42, 221, 144])
INTERFACE_MINT_TO = bytes([241, 34, 48, 186, 37, 179, 123, 192])
TRANSFER2 = 101


def _tx(program: AccountKey, data: bytes) -> Transaction:
    message = Message(
        header=MessageHeader(1, 0, 1),
        account_keys=(PAYER, program),
        recent_blockhash=bytes(32),
        instructions=(Instruction(1, (0,), data),),
    )
    return Transaction.unsigned(message)


def _classify(program: AccountKey, data: bytes):
    tx = _tx(program, data)
    return LightProtocolClassifier().classify(tx.message.instructions[0], 0, resolve(tx))


def test_compressed_token_transfer_is_confidential() -> None:
    findings = _classify(COMPRESSED_TOKEN_PROGRAM_ID, bytes([3]) + struct.pack("<Q", 42))

    assert len(findings) == 1
    assert findings[0].classification is PrivacyClassification.CONFIDENTIAL
    assert findings[0].action == "ctoken_transfer"
    assert findings[0].details == {"amount": 42}


def test_eight_byte_discriminator_wins_over_single_byte_tag() -> None:
    # compress_sol starts with 101, which is also the transfer2 tag
    findings = _classify(COMPRESSED_TOKEN_PROGRAM_ID, COMPRESS_SOL + struct.pack("<Q", 5_000))

    assert findings[0].action == "compress_sol"
    assert findings[0].classification is PrivacyClassification.HYBRID
    assert findings[0].details["amount"] == 5_000


@pytest.mark.parametrize(
    "data, expected",
    [
        (INVOKE + bytes(20) + b"\x01" + struct.pack("<Q", 100_000_000) + b"\x01", PrivacyClassification.HYBRID),
        (INVOKE + bytes(20), PrivacyClassification.COMPRESSED),
    ],
)
def test_invoke_is_hybrid_only_when_moving_lamports(data: bytes, expected: PrivacyClassification) -> None:
    findings = _classify(LIGHT_SYSTEM_PROGRAM_ID, data)

    assert findings[0].classification is expected


def test_storage_operations_are_compressed() -> None:
    findings = _classify(ACCOUNT_COMPRESSION_PROGRAM_ID, INSERT_INTO_QUEUES + b"\x00")

    assert findings[0].classification is PrivacyClassification.COMPRESSED


def test_unknown_discriminator_yields_no_finding() -> None:
    assert _classify(LIGHT_SYSTEM_PROGRAM_ID, bytes(8)) == []
    assert match_action(LIGHT_SYSTEM_PROGRAM_ID, bytes([3]) * 8) is None


def test_other_programs_are_not_claimed() -> None:
    assert _classify(UNRELATED, TRANSFER) is None


@pytest.mark.parametrize(
    "program, data",
    [(LIGHT_SYSTEM_PROGRAM_ID, INVOKE[:7]), (COMPRESSED_TOKEN_PROGRAM_ID, b"")],
)
def test_short_data_is_malformed(program: AccountKey, data: bytes) -> None:
    with pytest.raises(MalformedInstructionData):
        _classify(program, data)


def test_analyzer_with_builtin_registry() -> None:
    summary = analyze(_tx(LIGHT_SYSTEM_PROGRAM_ID, TRANSFER), registry=builtin_registry())

    assert summary.classification is PrivacyClassification.CONFIDENTIAL
    assert summary.findings[0].description.startswith("Light Protocol")


def test_analyzer_reports_malformed_light_instruction() -> None:
    summary = analyze(_tx(LIGHT_SYSTEM_PROGRAM_ID, b"\x01"), registry=builtin_registry())

    assert summary.findings == []
    assert summary.warnings == [AnalysisWarning.MALFORMED_INSTRUCTION]


def test_light_programs_are_unknown_without_registration() -> None:
    summary = analyze(_tx(LIGHT_SYSTEM_PROGRAM_ID, TRANSFER), registry=default_registry())

    assert summary.findings == []
    assert AnalysisWarning.UNKNOWN_PROGRAM in summary.warnings


def _u32(value: int) -> bytes:
    return struct.pack("<I", value)


def _u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def _transfer2_payload() -> bytes:
    data = bytes([TRANSFER2])
    data += bytes([1, 1, 1, 1, 1, 1, 0])  # fixed flags and indices
    data += b"\x01" + _u32(1) + b"\x00"  # cpi_context without account context
    data += b"\x01" + _u32(1) + b"\x00" + _u64(100) + bytes(22)  # one compression
    data += b"\x00"  # no proof
    data += _u32(1) + _u64(200) + b"\x00" + b"\x00" + bytes(9)  # one input
    data += _u32(1) + _u64(300) + bytes(13)  # one output
    data += b"\x01" + _u32(1) + _u64(1_000)  # in_lamports
    data += b"\x01" + _u32(1) + _u64(2_000)  # out_lamports
    return data


def test_transfer2_sums_amounts_and_lamports() -> None:
    findings = _classify(COMPRESSED_TOKEN_PROGRAM_ID, _transfer2_payload())

    assert findings[0].action == "transfer2"
    assert findings[0].classification is PrivacyClassification.CONFIDENTIAL
    assert findings[0].details == {"amount": 600, "in_lamports": 1_000, "out_lamports": 2_000}


def test_transfer2_without_lamports_reports_amount_only() -> None:
    data = _transfer2_payload()
    data = data[: -2 * (1 + 4 + 8)] + b"\x00\x00"

    findings = _classify(COMPRESSED_TOKEN_PROGRAM_ID, data)

    assert findings[0].details == {"amount": 600}


@pytest.mark.parametrize(
    "data",
    [
        bytes([TRANSFER2, 0]) + _u32(0) + _u32(0),
        bytes([TRANSFER2, 0]) + _u32(0) + _u32(0) + b"\x00\x00",
    ],
)
def test_truncated_transfer2_is_still_labeled(data: bytes) -> None:
    findings = _classify(COMPRESSED_TOKEN_PROGRAM_ID, data)

    assert findings[0].action == "transfer2"
    assert findings[0].classification is PrivacyClassification.CONFIDENTIAL
    assert findings[0].details == {}


def test_batch_compress_prefers_explicit_amount() -> None:
    data = BATCH_COMPRESS + _u32(1) + bytes(32)
    data += b"\x01" + _u32(2) + _u64(400) + _u64(500)
    data += b"\x00"  # no lamports
    data += b"\x01" + _u64(900)

    findings = _classify(COMPRESSED_TOKEN_PROGRAM_ID, data)

    assert findings[0].action == "batch_compress"
    assert findings[0].details == {"amount": 900}


def test_batch_compress_falls_back_to_summed_amounts() -> None:
    data = BATCH_COMPRESS + _u32(0) + b"\x01" + _u32(2) + _u64(400) + _u64(500)

    findings = _classify(COMPRESSED_TOKEN_PROGRAM_ID, data)

    assert findings[0].details == {"amount": 900}


def test_interface_mint_to_sums_amounts() -> None:
    data = INTERFACE_MINT_TO + _u32(1) + bytes(32) + _u32(2) + _u64(7) + _u64(8)

    findings = _classify(COMPRESSED_TOKEN_PROGRAM_ID, data)

    assert findings[0].action == "mint_to"
    assert findings[0].classification is PrivacyClassification.CONFIDENTIAL
    assert findings[0].details == {"amount": 15}


def test_noop_program_is_recognized_without_findings() -> None:
    assert _classify(SPL_NOOP_PROGRAM_ID, b"\x01") == []

    summary = analyze(_tx(SPL_NOOP_PROGRAM_ID, b""), registry=builtin_registry())

    assert summary.findings == []
    assert AnalysisWarning.UNKNOWN_PROGRAM not in summary.warnings
