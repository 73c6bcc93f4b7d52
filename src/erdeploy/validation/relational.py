"""Relationship-level checks: foreign keys, orphans, cycles and duplicates."""

from typing import Dict, Iterator, List, Set, Tuple
from pydantic import BaseModel, Field

from erdeploy.config.logging import get_logger
from erdeploy.ir.findings import ValidationFinding
from erdeploy.ir.schema import Entity, Relationship
from erdeploy.parsing.diagram_parser import junction_name

logger = get_logger(__name__)


class RelationalValidationResult(BaseModel):
    """Outcome of the relationship checks. Findings here never block."""

    is_valid: bool = True
    warnings: List[ValidationFinding] = Field(default_factory=list)


def _has_reference(entity: Entity, other: str) -> bool:
    return entity.has_attribute(f"{other.lower()}_id") or bool(entity.foreign_keys())


def _check_foreign_key(
    rel: Relationship, by_name: Dict[str, Entity]
) -> List[ValidationFinding]:
    source = by_name[rel.from_entity]
    target = by_name[rel.to_entity]
    if source.is_standard or target.is_standard:
        return []
    if _has_reference(source, rel.to_entity):
        return []
    if rel.cardinality.type == "one-to-one" and _has_reference(target, rel.from_entity):
        return []

    fk_name = f"{rel.to_entity.lower()}_id"
    return [
        ValidationFinding(
            type="missing_foreign_key",
            severity="warning",
            message=(
                f"Relationship {rel.from_entity} -> {rel.to_entity} has no foreign key "
                f"attribute on '{rel.from_entity}'"
            ),
            suggestion=f"Add '{fk_name}' to '{rel.from_entity}' as a foreign key",
            entity=rel.from_entity,
            relationship=rel.describe(),
            auto_fixable=True,
            fix_data={
                "action": "add_foreign_key",
                "from_entity": rel.from_entity,
                "to_entity": rel.to_entity,
                "foreign_key_name": fk_name,
            },
        )
    ]


def find_cycles(relationships: List[Relationship]) -> List[List[str]]:
    """
    Find directed cycles by depth-first search.

    Every node is used as a root once unless an earlier search reached it.
    A cycle is reported when an edge leads back to a node still on the active
    path; the returned path repeats that node at the end.

    Args:
        relationships: Edges from ``from_entity`` to ``to_entity``

    Returns:
        List of cycle paths, e.g. ``[["A", "B", "C", "A"]]``
    """
    graph: Dict[str, List[str]] = {}
    for rel in relationships:
        graph.setdefault(rel.from_entity, []).append(rel.to_entity)
        graph.setdefault(rel.to_entity, [])

    visited: Set[str] = set()
    path: List[str] = []
    on_path: Set[str] = set()
    cycles: List[List[str]] = []

    def enter(node: str) -> Tuple[str, Iterator[str]]:
        visited.add(node)
        path.append(node)
        on_path.add(node)
        return node, iter(graph[node])

    # Explicit stack of (node, remaining successors)
    for root in graph:
        if root in visited:
            continue
        stack = [enter(root)]
        while stack:
            node, successors = stack[-1]
            nxt = next(successors, None)
            if nxt is None:
                stack.pop()
                path.pop()
                on_path.discard(node)
            elif nxt in on_path:
                cycles.append(path[path.index(nxt):] + [nxt])
            elif nxt not in visited:
                stack.append(enter(nxt))
    return cycles


def validate_relationships(
    entities: List[Entity], relationships: List[Relationship]
) -> RelationalValidationResult:
    """
    Validate relationships between entities.

    When every entity is a standard entity the checks are skipped, since
    standard entities already carry their platform relationships.

    Args:
        entities: Entities (optionally tagged by the classifier)
        relationships: Relationships to check

    Returns:
        RelationalValidationResult (always valid; findings are advisory)
    """
    if entities and all(e.is_standard for e in entities):
        logger.info("All entities are standard; skipping relationship validation")
        return RelationalValidationResult()

    by_name: Dict[str, Entity] = {}
    for entity in entities:
        by_name.setdefault(entity.name, entity)

    warnings: List[ValidationFinding] = []

    for rel in relationships:
        missing = [n for n in (rel.from_entity, rel.to_entity) if n not in by_name]
        if missing:
            warnings.append(
                ValidationFinding(
                    type="orphaned_relationship",
                    severity="error",
                    message=(
                        f"Relationship {rel.from_entity} -> {rel.to_entity} references "
                        f"undefined entity: {', '.join(missing)}"
                    ),
                    suggestion="Define the missing entity or remove the relationship",
                    relationship=rel.describe(),
                    context={"missing_entities": missing},
                )
            )
            continue
        warnings.extend(_check_foreign_key(rel, by_name))

    for cycle in find_cycles(relationships):
        cycle_path = " → ".join(cycle)
        warnings.append(
            ValidationFinding(
                type="circular_dependency",
                severity="warning",
                message=f"Circular dependency detected: {cycle_path}.",
                suggestion="Make one of the relationships optional or remove it",
                entity=cycle[0],
                context={"cycle": cycle, "cycle_path": cycle_path},
            )
        )

    for rel in relationships:
        if rel.cardinality.type != "many-to-many":
            continue
        junction = junction_name(rel.from_entity, rel.to_entity)
        warnings.append(
            ValidationFinding(
                type="many_to_many",
                severity="info",
                message=(
                    f"Many-to-many relationship between {rel.from_entity} and "
                    f"{rel.to_entity} needs a junction entity"
                ),
                suggestion=f"Introduce junction entity '{junction}'",
                relationship=rel.describe(),
                auto_fixable=True,
                fix_data={
                    "action": "convert_to_junction_table",
                    "junction_table": junction,
                },
            )
        )

    seen: Dict[Tuple[str, str], int] = {}
    for index, rel in enumerate(relationships):
        key = tuple(sorted((rel.from_entity, rel.to_entity)))
        if key not in seen:
            seen[key] = index
            continue
        warnings.append(
            ValidationFinding(
                type="duplicate_relationship",
                severity="warning",
                message=(
                    f"Relationship between {rel.from_entity} and {rel.to_entity} "
                    f"is already defined"
                ),
                suggestion="Remove the duplicate relationship",
                relationship=rel.describe(),
                auto_fixable=True,
                fix_data={
                    "action": "remove_duplicate",
                    "relationship_index": index,
                    "first_index": seen[key],
                },
                context={"index": index},
            )
        )

    if warnings:
        logger.warning(f"Relationship validation found {len(warnings)} finding(s)")
    else:
        logger.info("Relationship validation passed")
    return RelationalValidationResult(warnings=warnings)
