"""Read-only analysis of a resolved transaction: fees, transfers and privacy."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple

from .extensions.registry import ClassifierRegistry, default_registry
from .fees import FeeEstimate, check_fee_limit, estimate_fee
from .findings import AnalysisFinding, MalformedInstructionData, PrivacyClassification
from .instructions import (
    BUILTIN_PROGRAMS,
    COMPUTE_BUDGET_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAMS,
    MalformedBuiltinInstruction,
    decode_compute_budget,
    decode_system_transfer,
)
from .keys import AccountKey
from .lookup_tables import ResolvedContext, static_context
from .model import Transaction

logger = logging.getLogger(__name__)


class AnalysisWarning(str, Enum):
    LOOKUP_TABLES_NOT_PROVIDED = "lookup_tables_not_provided"
    TOKEN_TRANSFER_DETECTED = "token_transfer_detected"
    UNKNOWN_PROGRAM = "unknown_program"
    MALFORMED_INSTRUCTION = "malformed_instruction"
    SIGNER_NOT_REQUIRED = "signer_not_required"


@dataclass(frozen=True)
class TransferEffect:
    """A native transfer decoded from a System Program instruction."""

    instruction_index: int
    source: AccountKey
    destination: AccountKey
    lamports: int
    source_is_signer: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "instruction_index": self.instruction_index,
            "from": self.source.to_base58(),
            "to": self.destination.to_base58(),
            "lamports": self.lamports,
            "from_is_signer": self.source_is_signer,
        }


@dataclass
class AnalysisSummary:
    """Everything the analyzer could derive without network access."""

    fee: FeeEstimate
    findings: List[AnalysisFinding] = field(default_factory=list)
    balance_changes: Dict[AccountKey, int] = field(default_factory=dict)
    transfers: List[TransferEffect] = field(default_factory=list)
    warnings: List[AnalysisWarning] = field(default_factory=list)
    unknown_programs: List[AccountKey] = field(default_factory=list)
    signer: AccountKey | None = None
    is_fee_payer: bool = False
    total_sent_by_signer: int = 0

    @property
    def estimated_fee(self) -> int:
        return self.fee.total

    @property
    def classification(self) -> PrivacyClassification:
        return PrivacyClassification.highest(finding.classification for finding in self.findings)

    @property
    def max_total_cost(self) -> int:
        if self.signer is None or self.is_fee_payer:
            return self.fee.total + self.total_sent_by_signer
        return self.total_sent_by_signer

    def count(self, classification: PrivacyClassification) -> int:
        return sum(1 for finding in self.findings if finding.classification is classification)

    def _warn(self, warning: AnalysisWarning) -> None:
        if warning not in self.warnings:
            self.warnings.append(warning)

    def to_dict(self) -> dict[str, Any]:
        return {
            "estimated_fee_lamports": self.fee.total,
            "base_fee_lamports": self.fee.base_fee,
            "priority_fee_lamports": self.fee.priority_fee,
            "priority_fee_estimated": self.fee.priority_estimated,
            "compute_unit_limit": self.fee.compute_unit_limit,
            "compute_unit_price_micro_lamports": self.fee.compute_unit_price,
            "classification": self.classification.value,
            "findings": [finding.to_dict() for finding in self.findings],
            "balance_changes": {key.to_base58(): delta for key, delta in self.balance_changes.items()},
            "transfers": [transfer.to_dict() for transfer in self.transfers],
            "warnings": [warning.value for warning in self.warnings],
            "unknown_programs": [key.to_base58() for key in self.unknown_programs],
            "signer": self.signer.to_base58() if self.signer else None,
            "is_fee_payer": self.is_fee_payer,
            "total_sent_by_signer": self.total_sent_by_signer,
            "max_total_cost_lamports": self.max_total_cost,
        }


def _apply_builtin(
    summary: AnalysisSummary,
    program: AccountKey,
    index: int,
    instruction,
    context: ResolvedContext,
) -> None:
    if program == SYSTEM_PROGRAM_ID:
        transfer = decode_system_transfer(instruction)
        if transfer is None:
            return
        source = context.get(transfer.from_index)
        destination = context.get(transfer.to_index)
        if source is None or destination is None:
            return
        summary.transfers.append(
            TransferEffect(
                instruction_index=index,
                source=source,
                destination=destination,
                lamports=transfer.lamports,
                source_is_signer=context.is_signer(transfer.from_index),
            )
        )
        summary.balance_changes[source] = summary.balance_changes.get(source, 0) - transfer.lamports
        summary.balance_changes[destination] = (
            summary.balance_changes.get(destination, 0) + transfer.lamports
        )
    elif program == COMPUTE_BUDGET_PROGRAM_ID:
        decode_compute_budget(instruction)
    elif program in TOKEN_PROGRAMS:
        summary._warn(AnalysisWarning.TOKEN_TRANSFER_DETECTED)


def _classify(
    summary: AnalysisSummary,
    registry: ClassifierRegistry,
    index: int,
    instruction,
    context: ResolvedContext,
) -> bool:
    recognized = False
    for classifier in registry:
        try:
            result = classifier.classify(instruction, index, context)
        except MalformedInstructionData as exc:
            logger.debug("classifier %s: %s", getattr(classifier, "name", classifier), exc)
            summary._warn(AnalysisWarning.MALFORMED_INSTRUCTION)
            recognized = True
            continue
        if result is None:
            continue
        recognized = True
        summary.findings.extend(
            finding for finding in result if finding.classification is not PrivacyClassification.PUBLIC
        )
    return recognized


def analyze(
    transaction: Transaction,
    context: ResolvedContext | None = None,
    *,
    max_fee: int | None = None,
    registry: ClassifierRegistry | None = None,
    signer: AccountKey | None = None,
) -> AnalysisSummary:
    """Build an :class:`AnalysisSummary` for ``transaction``.

    Raises :class:`coldsign.errors.FeeExceedsLimit` when ``max_fee`` is set
    and the estimated fee is above it. Without a ``context`` the static
    accounts are used and unresolved lookups are reported as a warning.
    """

    if context is None:
        context = static_context(transaction.message)
    registry = registry if registry is not None else default_registry()
    logger.debug("classifiers: %s", registry.names())

    fee = estimate_fee(transaction, context.account_keys)
    check_fee_limit(fee, max_fee)

    summary = AnalysisSummary(fee=fee, signer=signer)
    if not context.resolved:
        summary._warn(AnalysisWarning.LOOKUP_TABLES_NOT_PROVIDED)

    for index, instruction in enumerate(transaction.message.instructions):
        program = context.get(instruction.program_id_index)
        if program is None:
            # program loaded through a lookup table that was not supplied
            continue
        builtin = program in BUILTIN_PROGRAMS
        if builtin:
            try:
                _apply_builtin(summary, program, index, instruction, context)
            except MalformedBuiltinInstruction as exc:
                logger.debug("instruction %d: %s", index, exc)
                summary._warn(AnalysisWarning.MALFORMED_INSTRUCTION)
        recognized = _classify(summary, registry, index, instruction, context)
        if not builtin and not recognized:
            summary._warn(AnalysisWarning.UNKNOWN_PROGRAM)
            if program not in summary.unknown_programs:
                summary.unknown_programs.append(program)

    if signer is not None:
        if signer not in transaction.message.required_signers:
            summary._warn(AnalysisWarning.SIGNER_NOT_REQUIRED)
        static = transaction.message.account_keys
        summary.is_fee_payer = bool(static) and static[0] == signer
        summary.total_sent_by_signer = sum(
            transfer.lamports for transfer in summary.transfers if transfer.source == signer
        )

    logger.debug(
        "analysis: fee=%d findings=%d warnings=%s",
        fee.total,
        len(summary.findings),
        [warning.value for warning in summary.warnings],
    )
    return summary


def analyze_unresolved(
    transaction: Transaction, **kwargs: Any
) -> Tuple[AnalysisSummary, ResolvedContext]:
    """Analyze using static accounts only, for V0 input without table snapshots."""

    context = static_context(transaction.message)
    return analyze(transaction, context, **kwargs), context
