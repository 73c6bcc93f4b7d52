"""Matching diagram entities against the standard entity registry."""

from .registry import StandardEntity, StandardEntityRegistry, default_registry
from .classifier import ClassificationMatch, ClassificationResult, EntityClassifier, classify_entities

__all__ = [
    "StandardEntity",
    "StandardEntityRegistry",
    "default_registry",
    "ClassificationMatch",
    "ClassificationResult",
    "EntityClassifier",
    "classify_entities",
]
