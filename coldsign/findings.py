"""Privacy labels and the findings classifiers attach to instructions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable

from .errors import DecodeError
from .keys import AccountKey


class PrivacyClassification(str, Enum):
    """Privacy impact labels ordered from least to most private."""

    PUBLIC = "public"
    COMPRESSED = "compressed"
    HYBRID = "hybrid"
    CONFIDENTIAL = "confidential"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @classmethod
    def highest(cls, labels: Iterable["PrivacyClassification"]) -> "PrivacyClassification":
        return max(labels, key=lambda label: label.severity, default=cls.PUBLIC)


_SEVERITY = {
    PrivacyClassification.PUBLIC: 0,
    PrivacyClassification.COMPRESSED: 1,
    PrivacyClassification.HYBRID: 2,
    PrivacyClassification.CONFIDENTIAL: 3,
}


class MalformedInstructionData(DecodeError):
    """Raised by a classifier when a program it owns sent unreadable data."""


@dataclass(frozen=True)
class AnalysisFinding:
    """One privacy observation about a specific instruction."""

    program_id: AccountKey
    instruction_index: int
    classification: PrivacyClassification
    description: str
    action: str | None = None
    details: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "program_id": self.program_id.to_base58(),
            "instruction_index": self.instruction_index,
            "classification": self.classification.value,
            "description": self.description,
        }
        if self.action:
            payload["action"] = self.action
        if self.details:
            payload["details"] = dict(self.details)
        return payload
