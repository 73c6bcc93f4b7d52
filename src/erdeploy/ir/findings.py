"""Validation findings reported by the parser and validators."""

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional

Severity = Literal["info", "warning", "error"]

FindingType = Literal[
    "duplicate_attribute",
    "missing_primary_key",
    "naming_convention",
    "reserved_keyword",
    "missing_foreign_key",
    "orphaned_relationship",
    "circular_dependency",
    "many_to_many",
    "duplicate_relationship",
]


@dataclass
class ValidationFinding:
    """A single issue found in a diagram."""

    type: FindingType
    severity: Severity
    message: str
    suggestion: Optional[str] = None
    entity: Optional[str] = None
    attribute: Optional[str] = None
    relationship: Optional[str] = None
    auto_fixable: bool = False
    fix_data: Optional[Dict[str, Any]] = None
    context: Dict[str, Any] = field(default_factory=dict)
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = finding_id(
                self.type, self.entity, self.attribute, self.relationship, self.message
            )

    @property
    def is_blocking(self) -> bool:
        return self.severity == "error"


def finding_id(*parts: Optional[str]) -> str:
    """Stable identifier for a finding, derived from its content."""
    raw = "|".join(p or "" for p in parts)
    return "finding_" + hashlib.sha1(raw.encode("utf-8")).hexdigest()[:12]
