"""Structural checks on entities: names, attributes and keys."""

import re
from collections import Counter
from typing import List
from pydantic import BaseModel, Field

from erdeploy.config.logging import get_logger
from erdeploy.ir.findings import ValidationFinding
from erdeploy.ir.schema import Entity, Relationship

logger = get_logger(__name__)

RESERVED_NAMES = frozenset({"User", "Role", "Group", "System", "Admin"})

_PASCAL_CASE_RE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
_WORD_SPLIT_RE = re.compile(r"[\s_\-]+")


class StructuralValidationResult(BaseModel):
    """Outcome of the structural checks."""

    is_valid: bool
    warnings: List[ValidationFinding] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


def to_pascal_case(name: str) -> str:
    """``order_line`` -> ``OrderLine``; ``ORDER_LINE`` -> ``OrderLine``."""
    return "".join(
        part[:1].upper() + part[1:].lower() for part in _WORD_SPLIT_RE.split(name) if part
    )


def _check_attributes(entity: Entity) -> List[ValidationFinding]:
    findings: List[ValidationFinding] = []

    counts = Counter(a.name for a in entity.attributes)
    for name, count in counts.items():
        if count > 1:
            findings.append(
                ValidationFinding(
                    type="duplicate_attribute",
                    severity="error",
                    message=f"Entity '{entity.name}' defines attribute '{name}' {count} times",
                    suggestion="Remove the duplicate attribute definitions",
                    entity=entity.name,
                    attribute=name,
                    auto_fixable=True,
                    fix_data={
                        "action": "remove_duplicates",
                        "entity": entity.name,
                        "attribute": name,
                    },
                )
            )

    if not entity.primary_keys():
        suggested = f"{entity.name.lower()}_id"
        findings.append(
            ValidationFinding(
                type="missing_primary_key",
                severity="warning",
                message=f"Entity '{entity.name}' has no primary key",
                suggestion=f"Add a primary key attribute such as '{suggested}'",
                entity=entity.name,
                auto_fixable=True,
                fix_data={
                    "action": "add_primary_key",
                    "entity": entity.name,
                    "suggested_primary_key": suggested,
                },
            )
        )
    return findings


def _check_naming(entity: Entity) -> List[ValidationFinding]:
    findings: List[ValidationFinding] = []
    if not _PASCAL_CASE_RE.match(entity.name):
        findings.append(
            ValidationFinding(
                type="naming_convention",
                severity="info",
                message=f"Entity name '{entity.name}' is not PascalCase",
                suggestion=f"Consider renaming to: {to_pascal_case(entity.name)}",
                entity=entity.name,
            )
        )
    if entity.name in RESERVED_NAMES:
        findings.append(
            ValidationFinding(
                type="reserved_keyword",
                severity="warning",
                message=f"Entity name '{entity.name}' is reserved on the target platform",
                suggestion=f"Use a more specific name, e.g. 'App{entity.name}'",
                entity=entity.name,
            )
        )
    return findings


def validate_entity_structure(
    entities: List[Entity], relationships: List[Relationship]
) -> StructuralValidationResult:
    """
    Validate entity structure.

    Duplicate entity names and relationships pointing at unknown entities are
    errors. Everything else is reported as findings.

    Args:
        entities: Entities to check
        relationships: Relationships whose endpoints must exist

    Returns:
        StructuralValidationResult; ``is_valid`` is False when there are errors
        or error-severity findings
    """
    errors: List[str] = []
    warnings: List[ValidationFinding] = []

    name_counts = Counter(e.name for e in entities)
    for name, count in name_counts.items():
        if count > 1:
            errors.append(f"Duplicate entity name: '{name}' is defined {count} times")

    for entity in entities:
        warnings.extend(_check_attributes(entity))
        warnings.extend(_check_naming(entity))

    for rel in relationships:
        for endpoint in (rel.from_entity, rel.to_entity):
            if endpoint not in name_counts:
                errors.append(f"Relationship references non-existent entity: '{endpoint}'")

    is_valid = not errors and not any(w.is_blocking for w in warnings)
    if is_valid:
        logger.info(f"Structural validation passed with {len(warnings)} finding(s)")
    else:
        logger.warning(
            f"Structural validation found {len(errors)} error(s) and {len(warnings)} finding(s)"
        )
    return StructuralValidationResult(is_valid=is_valid, warnings=warnings, errors=errors)
