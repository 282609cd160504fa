"""Pluggable instruction classifiers."""

from .registry import Classifier, ClassifierRegistry, builtin_registry, default_registry
from .light_protocol import LightProtocolClassifier

__all__ = [
    "Classifier",
    "ClassifierRegistry",
    "LightProtocolClassifier",
    "builtin_registry",
    "default_registry",
]
