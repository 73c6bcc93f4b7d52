"""Schema model shared by the parser, validators and deployment."""

from .schema import (
    Attribute,
    Cardinality,
    CardinalityType,
    Entity,
    FieldType,
    ParseResult,
    Relationship,
)
from .findings import Severity, FindingType, ValidationFinding

__all__ = [
    "Attribute",
    "Cardinality",
    "CardinalityType",
    "Entity",
    "FieldType",
    "ParseResult",
    "Relationship",
    "Severity",
    "FindingType",
    "ValidationFinding",
]
