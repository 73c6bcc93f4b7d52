"""Apply the mechanical fixes described by auto-fixable findings."""

from typing import Dict, List, Set
from pydantic import BaseModel, Field

from erdeploy.config.logging import get_logger
from erdeploy.ir.findings import ValidationFinding
from erdeploy.ir.schema import Attribute, Entity, Relationship
from erdeploy.parsing.renderer import render_diagram

logger = get_logger(__name__)


class FixOutcome(BaseModel):
    """Diagram after fixes were applied."""

    entities: List[Entity] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)
    applied: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    corrected_text: str = ""


def _attribute_rank(attribute: Attribute) -> int:
    rank = 0
    if attribute.is_primary_key or attribute.is_foreign_key or attribute.is_unique:
        rank += 2
    if attribute.description:
        rank += 1
    return rank


def _remove_duplicates(entity: Entity, attribute_name: str) -> Entity:
    """Keep the most informative definition of ``attribute_name``, at its first position."""
    duplicates = [a for a in entity.attributes if a.name == attribute_name]
    best = max(duplicates, key=_attribute_rank)  # max() keeps the first on ties
    kept: List[Attribute] = []
    placed = False
    for attribute in entity.attributes:
        if attribute.name != attribute_name:
            kept.append(attribute)
        elif not placed:
            kept.append(best)
            placed = True
    return entity.model_copy(update={"attributes": kept})


def apply_fixes(
    entities: List[Entity],
    relationships: List[Relationship],
    findings: List[ValidationFinding],
) -> FixOutcome:
    """
    Apply every auto-fixable finding that this module knows how to fix.

    Args:
        entities: Current entities (not modified)
        relationships: Current relationships (not modified)
        findings: Findings from the validators

    Returns:
        FixOutcome with corrected copies and the regenerated diagram text
    """
    by_name: Dict[str, Entity] = {}
    for entity in entities:
        by_name.setdefault(entity.name, entity.model_copy(deep=True))
    drop_indexes: Set[int] = set()
    applied: List[str] = []
    skipped: List[str] = []

    for finding in findings:
        if not finding.auto_fixable or not finding.fix_data:
            continue
        data = finding.fix_data
        action = data.get("action")

        if action == "remove_duplicates" and data.get("entity") in by_name:
            name = data["entity"]
            by_name[name] = _remove_duplicates(by_name[name], data["attribute"])
            applied.append(f"Removed duplicate attribute '{data['attribute']}' from {name}")

        elif action == "add_primary_key" and data.get("entity") in by_name:
            entity = by_name[data["entity"]]
            key = data["suggested_primary_key"]
            if entity.primary_keys():
                continue
            if entity.has_attribute(key):
                attributes = [
                    a.model_copy(update={"is_primary_key": True}) if a.name == key else a
                    for a in entity.attributes
                ]
            else:
                pk = Attribute(
                    name=key,
                    type="identifier",
                    is_primary_key=True,
                    description="Unique identifier",
                )
                attributes = [pk] + entity.attributes
            by_name[entity.name] = entity.model_copy(update={"attributes": attributes})
            applied.append(f"Added primary key '{key}' to {entity.name}")

        elif action == "add_foreign_key" and data.get("from_entity") in by_name:
            entity = by_name[data["from_entity"]]
            key = data["foreign_key_name"]
            if entity.has_attribute(key):
                continue
            fk = Attribute(
                name=key,
                type="identifier",
                is_foreign_key=True,
                description=f"Foreign key to {data['to_entity']}",
            )
            by_name[entity.name] = entity.model_copy(update={"attributes": entity.attributes + [fk]})
            applied.append(f"Added foreign key '{key}' to {entity.name}")

        elif action == "remove_duplicate":
            drop_indexes.add(data["relationship_index"])
            applied.append(f"Removed duplicate relationship {finding.relationship}")

        else:
            skipped.append(finding.message)

    # Duplicate entity names cannot be fixed mechanically; later copies are dropped.
    fixed_entities = list(by_name.values())
    fixed_relationships = [
        rel for index, rel in enumerate(relationships) if index not in drop_indexes
    ]
    logger.info(f"Applied {len(applied)} fix(es), skipped {len(skipped)}")
    return FixOutcome(
        entities=fixed_entities,
        relationships=fixed_relationships,
        applied=applied,
        skipped=skipped,
        corrected_text=render_diagram(fixed_entities, fixed_relationships),
    )
