"""Structural and relational validation of parsed diagrams."""

from typing import List, Optional
from pydantic import BaseModel, Field

from erdeploy.ir.findings import ValidationFinding
from erdeploy.ir.schema import Entity, ParseResult
from .structural import StructuralValidationResult, validate_entity_structure
from .relational import RelationalValidationResult, validate_relationships, find_cycles
from .fixers import FixOutcome, apply_fixes


class DiagramValidationReport(BaseModel):
    """Combined result of both validators."""

    structural: StructuralValidationResult
    relational: RelationalValidationResult

    @property
    def is_valid(self) -> bool:
        return self.structural.is_valid and self.relational.is_valid

    @property
    def errors(self) -> List[str]:
        return list(self.structural.errors)

    @property
    def findings(self) -> List[ValidationFinding]:
        return self.structural.warnings + self.relational.warnings


def validate_diagram(
    result: ParseResult, entities: Optional[List[Entity]] = None
) -> DiagramValidationReport:
    """
    Run the structural and relational validators over a parse result.

    Args:
        result: Successful ParseResult
        entities: Classifier-tagged entities to use instead of ``result.entities``
    """
    checked = entities if entities is not None else result.entities
    return DiagramValidationReport(
        structural=validate_entity_structure(checked, result.relationships),
        relational=validate_relationships(checked, result.relationships),
    )


__all__ = [
    "DiagramValidationReport",
    "FixOutcome",
    "RelationalValidationResult",
    "StructuralValidationResult",
    "apply_fixes",
    "find_cycles",
    "validate_diagram",
    "validate_entity_structure",
    "validate_relationships",
]
