from __future__ import annotations

from typing import List, Optional

from coldsign.analyzer import AnalysisWarning, analyze, analyze_unresolved
from coldsign.extensions.registry import ClassifierRegistry
from coldsign.findings import AnalysisFinding, PrivacyClassification
from coldsign.instructions import (
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    system_transfer_data,
)
from coldsign.keys import AccountKey
from coldsign.lookup_tables import ResolvedContext, resolve
from coldsign.model import (
    AddressTableLookup,
    Instruction,
    Message,
    MessageHeader,
    MessageVersion,
    Transaction,
)

PAYER = AccountKey(bytes([1]) * 32)
COSIGNER = AccountKey(bytes([2]) * 32)
DEST = AccountKey(bytes([3]) * 32)
PRIVATE_PROGRAM = AccountKey(bytes([40]) * 32)
OTHER_PROGRAM = AccountKey(bytes([41]) * 32)

LABELS = {
    0x01: PrivacyClassification.PUBLIC,
    0x02: PrivacyClassification.COMPRESSED,
    0x03: PrivacyClassification.HYBRID,
    0x04: PrivacyClassification.CONFIDENTIAL,
}


class StubClassifier:
    name = "stub"

    def __init__(self, program: AccountKey = PRIVATE_PROGRAM, log: list | None = None) -> None:
        self.program = program
        self.log = log if log is not None else []

    def classify(
        self, instruction: Instruction, index: int, context: ResolvedContext
    ) -> Optional[List[AnalysisFinding]]:
        self.log.append((self.name, index))
        if context.get(instruction.program_id_index) != self.program:
            return None
        label = LABELS.get(instruction.data[0])
        if label is None:
            return []
        return [
            AnalysisFinding(
                program_id=self.program,
                instruction_index=index,
                classification=label,
                description=f"stub {label.value}",
            )
        ]


def _tx(*instructions: Instruction, keys=None, header=None) -> Transaction:
    keys = keys or (PAYER, COSIGNER, DEST, SYSTEM_PROGRAM_ID, PRIVATE_PROGRAM, OTHER_PROGRAM, TOKEN_PROGRAM_ID)
    message = Message(
        header=header or MessageHeader(2, 0, 5),
        account_keys=keys,
        recent_blockhash=bytes(32),
        instructions=instructions,
    )
    return Transaction.unsigned(message)


def test_confidential_instruction_yields_one_finding() -> None:
    tx = _tx(Instruction(4, (0,), b"\x04"))

    summary = analyze(tx, resolve(tx), registry=ClassifierRegistry([StubClassifier()]))

    assert len(summary.findings) == 1
    assert summary.findings[0].classification is PrivacyClassification.CONFIDENTIAL
    assert summary.findings[0].instruction_index == 0
    assert summary.classification is PrivacyClassification.CONFIDENTIAL


def test_unregistered_programs_produce_no_findings() -> None:
    tx = _tx(Instruction(5, (0,), b"\x04"))

    summary = analyze(tx, resolve(tx), registry=ClassifierRegistry([StubClassifier()]))

    assert summary.findings == []
    assert summary.classification is PrivacyClassification.PUBLIC
    assert AnalysisWarning.UNKNOWN_PROGRAM in summary.warnings
    assert summary.unknown_programs == [OTHER_PROGRAM]


def test_default_registry_is_empty() -> None:
    tx = _tx(Instruction(4, (0,), b"\x04"))

    summary = analyze(tx)

    assert summary.findings == []
    assert summary.classification is PrivacyClassification.PUBLIC


def test_public_findings_are_not_reported_and_max_severity_wins() -> None:
    tx = _tx(
        Instruction(4, (), b"\x01"),
        Instruction(4, (), b"\x02"),
        Instruction(4, (), b"\x03"),
        Instruction(4, (), b"\x09"),
    )

    summary = analyze(tx, registry=ClassifierRegistry([StubClassifier()]))

    assert [f.classification for f in summary.findings] == [
        PrivacyClassification.COMPRESSED,
        PrivacyClassification.HYBRID,
    ]
    assert summary.classification is PrivacyClassification.HYBRID
    assert summary.count(PrivacyClassification.HYBRID) == 1
    assert summary.count(PrivacyClassification.PUBLIC) == 0
    assert AnalysisWarning.UNKNOWN_PROGRAM not in summary.warnings


def test_classifiers_run_in_registration_order() -> None:
    log: list = []
    first = StubClassifier(log=log)
    second = StubClassifier(program=OTHER_PROGRAM, log=log)
    second.name = "second"
    tx = _tx(Instruction(4, (), b"\x02"))

    registry = ClassifierRegistry([first, second])

    analyze(tx, registry=registry)

    assert registry.names() == ["stub", "second"]
    assert log == [("stub", 0), ("second", 0)]


def test_system_transfer_balance_changes() -> None:
    tx = _tx(
        Instruction(3, (0, 2), system_transfer_data(1_000)),
        Instruction(3, (1, 2), system_transfer_data(250)),
    )

    summary = analyze(tx, signer=PAYER)

    assert summary.balance_changes == {PAYER: -1_000, COSIGNER: -250, DEST: 1_250}
    assert [t.lamports for t in summary.transfers] == [1_000, 250]
    assert summary.transfers[0].source_is_signer
    assert summary.total_sent_by_signer == 1_000
    assert summary.is_fee_payer
    assert summary.max_total_cost == summary.estimated_fee + 1_000
    assert summary.warnings == []


def test_cosigner_is_not_fee_payer() -> None:
    tx = _tx(Instruction(3, (1, 2), system_transfer_data(250)))

    summary = analyze(tx, signer=COSIGNER)

    assert not summary.is_fee_payer
    assert summary.max_total_cost == 250


def test_non_transfer_system_instruction_has_no_effect() -> None:
    create_account = (0).to_bytes(4, "little") + bytes(48)
    tx = _tx(Instruction(3, (0, 2), create_account))

    summary = analyze(tx)

    assert summary.transfers == []
    assert summary.warnings == []


def test_malformed_transfer_is_a_warning() -> None:
    tx = _tx(Instruction(3, (0,), system_transfer_data(5)))

    summary = analyze(tx)

    assert summary.warnings == [AnalysisWarning.MALFORMED_INSTRUCTION]
    assert summary.transfers == []


def test_token_program_is_flagged() -> None:
    tx = _tx(Instruction(6, (0, 2), b"\x03" + bytes(8)))

    summary = analyze(tx)

    assert summary.warnings == [AnalysisWarning.TOKEN_TRANSFER_DETECTED]


def test_signer_outside_required_set_is_flagged() -> None:
    summary = analyze(_tx(), signer=DEST)

    assert AnalysisWarning.SIGNER_NOT_REQUIRED in summary.warnings


def test_unresolved_v0_reports_missing_tables() -> None:
    table = AccountKey(bytes([50]) * 32)
    message = Message(
        header=MessageHeader(1, 0, 1),
        account_keys=(PAYER, SYSTEM_PROGRAM_ID),
        recent_blockhash=bytes(32),
        instructions=(Instruction(2, (0,), b"\x00"), Instruction(1, (0, 2), system_transfer_data(7))),
        address_table_lookups=(AddressTableLookup(table, (0,), ()),),
        version=MessageVersion.V0,
    )
    tx = Transaction.unsigned(message)

    summary, context = analyze_unresolved(tx)

    assert not context.resolved
    assert summary.warnings == [AnalysisWarning.LOOKUP_TABLES_NOT_PROVIDED]
    assert summary.transfers == []

    resolved = analyze(tx, resolve(tx, {table: [DEST]}))
    assert resolved.balance_changes == {PAYER: -7, DEST: 7}


def test_analysis_does_not_change_the_transaction() -> None:
    tx = _tx(Instruction(3, (0, 2), system_transfer_data(1)))
    before = tx

    analyze(tx, registry=ClassifierRegistry([StubClassifier()]))

    assert tx == before


def test_summary_to_dict_is_json_ready() -> None:
    tx = _tx(Instruction(4, (0,), b"\x04"), Instruction(3, (0, 2), system_transfer_data(9)))

    payload = analyze(tx, registry=ClassifierRegistry([StubClassifier()]), signer=PAYER).to_dict()

    assert payload["classification"] == "confidential"
    assert payload["estimated_fee_lamports"] == 10_000
    assert payload["balance_changes"][DEST.to_base58()] == 9
    assert payload["findings"][0]["program_id"] == PRIVATE_PROGRAM.to_base58()
