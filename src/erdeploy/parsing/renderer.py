"""Render entities and relationships back into erDiagram text."""

from typing import List
from erdeploy.ir.schema import Attribute, Entity, Relationship
from .notation import CANONICAL_TOKENS, CANONICAL_TYPE_TOKENS, lookup_cardinality

INDENT = "    "


def render_attribute(attribute: Attribute) -> str:
    """Render one attribute line (without indentation)."""
    type_token = attribute.source_type
    if not type_token:
        type_token = CANONICAL_TYPE_TOKENS[attribute.type]
        if attribute.type == "choice" and attribute.choice_options:
            type_token = f"choice({', '.join(attribute.choice_options)})"

    parts = [type_token, attribute.name]
    keys = [
        flag
        for flag, enabled in (
            ("PK", attribute.is_primary_key),
            ("FK", attribute.is_foreign_key),
            ("UK", attribute.is_unique),
        )
        if enabled
    ]
    if keys:
        parts.append(", ".join(keys))
    if attribute.description:
        parts.append('"' + attribute.description.replace('"', "'") + '"')
    return " ".join(parts)


def render_relationship(relationship: Relationship) -> str:
    """Render a relationship, keeping its original token when it still fits."""
    token = relationship.notation
    known = lookup_cardinality(token) if token else None
    if known is None or known.type != relationship.cardinality.type:
        token = CANONICAL_TOKENS[relationship.cardinality.type]
    label = relationship.name.replace('"', "'")
    return f'{relationship.from_entity} {token} {relationship.to_entity} : "{label}"'


def render_diagram(entities: List[Entity], relationships: List[Relationship]) -> str:
    """
    Render a complete diagram.

    Args:
        entities: Entities to emit as blocks, in order
        relationships: Relationships to emit after the blocks, in order

    Returns:
        Diagram text starting with the ``erDiagram`` marker
    """
    lines = ["erDiagram"]
    for entity in entities:
        lines.append(f"{INDENT}{entity.name} {{")
        for attribute in entity.attributes:
            lines.append(f"{INDENT * 2}{render_attribute(attribute)}")
        lines.append(f"{INDENT}}}")
    for relationship in relationships:
        lines.append(f"{INDENT}{render_relationship(relationship)}")
    return "\n".join(lines) + "\n"
