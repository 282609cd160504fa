"""Ordered registry of pluggable instruction classifiers."""

from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Protocol, Sequence, runtime_checkable

from ..findings import AnalysisFinding
from ..lookup_tables import ResolvedContext
from ..model import Instruction

logger = logging.getLogger(__name__)


@runtime_checkable
class Classifier(Protocol):
    """Anything that can label one instruction.

    ``classify`` returns ``None`` when the instruction's program is not one
    the classifier knows, and a (possibly empty) list of findings otherwise.
    It may raise :class:`coldsign.findings.MalformedInstructionData` for a
    known program whose data cannot be read.
    """

    name: str

    def classify(
        self, instruction: Instruction, index: int, context: ResolvedContext
    ) -> Optional[Sequence[AnalysisFinding]]:
        ...


class ClassifierRegistry:
    """Classifiers evaluated in registration order."""

    def __init__(self, classifiers: Sequence[Classifier] = ()) -> None:
        self._classifiers: List[Classifier] = []
        for classifier in classifiers:
            self.register(classifier)

    def register(self, classifier: Classifier) -> "ClassifierRegistry":
        if not isinstance(classifier, Classifier):
            raise TypeError(f"{classifier!r} does not implement classify()")
        logger.debug("registered classifier %s", getattr(classifier, "name", classifier))
        self._classifiers.append(classifier)
        return self

    def __iter__(self) -> Iterator[Classifier]:
        return iter(self._classifiers)

    def __len__(self) -> int:
        return len(self._classifiers)

    def names(self) -> list[str]:
        return [getattr(classifier, "name", type(classifier).__name__) for classifier in self._classifiers]


def default_registry() -> ClassifierRegistry:
    """An empty registry; classifiers are only active once registered."""

    return ClassifierRegistry()


def builtin_registry() -> ClassifierRegistry:
    """Registry with every classifier shipped in this package."""

    from .light_protocol import LightProtocolClassifier

    return ClassifierRegistry([LightProtocolClassifier()])
