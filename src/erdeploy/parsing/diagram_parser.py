"""Parser turning Mermaid erDiagram text into entities and relationships."""

import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple, Union

from erdeploy.config.logging import get_logger
from erdeploy.errors import DiagramParseError
from erdeploy.ir.findings import ValidationFinding
from erdeploy.ir.schema import Attribute, Entity, ParseResult, Relationship
from .notation import CANONICAL_TOKENS, lookup_cardinality, map_type
from .renderer import render_diagram

logger = get_logger(__name__)

DIAGRAM_MARKER = "erDiagram"

_BLOCK_OPEN_RE = re.compile(r"^(\w+)\s*\{$")
_INLINE_BLOCK_RE = re.compile(r"^(\w+)\s*\{(.*)\}$")
_ATTRIBUTE_RE = re.compile(
    r"(?P<type>\w+(?:\([^)]*\))?(?:\[\])?)\s+(?P<name>\w+)"
    r"(?P<keys>(?:\s+(?:PK|FK|UK)\b(?:\s*,\s*(?:PK|FK|UK)\b)*)?)"
    r'(?:\s+"(?P<description>[^"]*)")?'
)
_RELATIONSHIP_RE = re.compile(
    r"^(?P<from>\w+)\s+(?P<token>[|}{o.\-]+)\s+(?P<to>\w+)(?:\s*:\s*(?P<label>.+))?$"
)
_UPPER_SNAKE_RE = re.compile(r"^[A-Z][A-Z0-9_]+$")

Emitted = Union[Entity, Relationship, None]


@dataclass(frozen=True)
class ScanState:
    """Scanner position: outside any block, or inside the block of ``block``."""

    block: Optional[str] = None
    attributes: Tuple[Attribute, ...] = ()
    opened_at: int = 0

    @property
    def inside_block(self) -> bool:
        return self.block is not None


def step(state: ScanState, line: str, lineno: int) -> Tuple[ScanState, Emitted]:
    """
    Consume one stripped, non-empty line.

    Args:
        state: Current scanner state
        line: Line content with surrounding whitespace removed
        lineno: 1-based line number for error reporting

    Returns:
        Tuple of (next state, entity or relationship completed by this line)

    Raises:
        DiagramParseError: If the line is not valid in the current state
    """
    if state.inside_block:
        if line == "}":
            entity = Entity(name=state.block, attributes=list(state.attributes))
            return ScanState(), entity
        if line.endswith("{"):
            raise DiagramParseError(
                f"Nested block opened while '{state.block}' is still open", lineno
            )
        attribute = _parse_attribute_line(line, lineno)
        return replace(state, attributes=state.attributes + (attribute,)), None

    if line == "}":
        raise DiagramParseError("Closing '}' without an open entity block", lineno)

    match = _BLOCK_OPEN_RE.match(line)
    if match:
        return ScanState(block=match.group(1), opened_at=lineno), None

    match = _INLINE_BLOCK_RE.match(line)
    if match:
        body = match.group(2)
        if "{" in body or "}" in body:
            raise DiagramParseError("Unbalanced braces in inline entity block", lineno)
        attributes = _parse_attribute_run(body, lineno)
        return state, Entity(name=match.group(1), attributes=attributes)

    match = _RELATIONSHIP_RE.match(line)
    if match:
        return state, _build_relationship(match, lineno)

    raise DiagramParseError(f"Unrecognized line: '{line}'", lineno)


def _build_attribute(match: "re.Match[str]") -> Attribute:
    type_token = match.group("type")
    field_type, options = map_type(type_token)
    keys = {k.strip() for k in match.group("keys").split(",") if k.strip()}
    return Attribute(
        name=match.group("name"),
        type=field_type,
        is_primary_key="PK" in keys,
        is_foreign_key="FK" in keys,
        is_unique="UK" in keys,
        description=match.group("description"),
        source_type=type_token,
        choice_options=options,
    )


def _parse_attribute_line(line: str, lineno: int) -> Attribute:
    match = _ATTRIBUTE_RE.fullmatch(line)
    if not match:
        raise DiagramParseError(f"Invalid attribute definition: '{line}'", lineno)
    return _build_attribute(match)


def _parse_attribute_run(body: str, lineno: int) -> List[Attribute]:
    """Parse the attribute definitions of a one-line ``Name { ... }`` block."""
    attributes: List[Attribute] = []
    text = body.strip()
    pos = 0
    while pos < len(text):
        match = _ATTRIBUTE_RE.match(text, pos)
        if not match:
            raise DiagramParseError(
                f"Invalid attribute definition: '{text[pos:]}'", lineno
            )
        attributes.append(_build_attribute(match))
        pos = match.end()
        while pos < len(text) and text[pos] in " \t;,":
            pos += 1
    return attributes


def _build_relationship(match: "re.Match[str]", lineno: int) -> Relationship:
    token = match.group("token")
    cardinality = lookup_cardinality(token)
    if cardinality is None:
        raise DiagramParseError(f"Unknown cardinality notation '{token}'", lineno)

    source, target = match.group("from"), match.group("to")
    label = (match.group("label") or "").strip().strip('"').strip()
    return Relationship(
        from_entity=source,
        to_entity=target,
        cardinality=cardinality,
        name=label or f"{source}_{target}",
        notation=token,
    )


def junction_name(source: str, target: str) -> str:
    """Name of the junction entity standing in for ``source`` many-to-many ``target``."""
    if _UPPER_SNAKE_RE.match(source) and _UPPER_SNAKE_RE.match(target):
        return f"{source}_{target}"
    return f"{source}{target}"


def _junction_entity(name: str, source: str, target: str) -> Entity:
    source_key = f"{source.lower()}_id"
    target_key = f"{target.lower()}_id"
    if source_key == target_key:
        target_key = f"related_{target_key}"
    return Entity(
        name=name,
        is_junction=True,
        attributes=[
            Attribute(
                name="id",
                type="identifier",
                is_primary_key=True,
                description="Unique identifier",
            ),
            Attribute(
                name=source_key,
                type="identifier",
                is_foreign_key=True,
                description=f"Foreign key to {source}",
            ),
            Attribute(
                name=target_key,
                type="identifier",
                is_foreign_key=True,
                description=f"Foreign key to {target}",
            ),
        ],
    )


def _junction_relationship(parent: str, junction: str) -> Relationship:
    token = CANONICAL_TOKENS["one-to-many"]
    return Relationship(
        from_entity=parent,
        to_entity=junction,
        cardinality=lookup_cardinality(token),
        name="has",
        notation=token,
    )


def expand_many_to_many(
    entities: List[Entity], relationships: List[Relationship]
) -> Tuple[List[Entity], List[Relationship], List[ValidationFinding]]:
    """
    Replace every many-to-many relationship with a junction entity.

    Each replaced relationship yields a junction entity (reused when one of
    that name already exists), two one-to-many relationships pointing at it,
    and a warning describing the rewrite.

    Args:
        entities: Entities in declaration order
        relationships: Relationships in declaration order

    Returns:
        Tuple of (entities, relationships, warnings); the inputs are left untouched
    """
    out_entities = list(entities)
    known: Dict[str, Entity] = {e.name: e for e in entities}
    out_relationships: List[Relationship] = []
    seen = set()
    warnings: List[ValidationFinding] = []

    for rel in relationships:
        if rel.cardinality.type != "many-to-many":
            out_relationships.append(rel)
            continue

        source, target = rel.from_entity, rel.to_entity
        name = junction_name(source, target)
        if name not in known:
            known[name] = _junction_entity(name, source, target)
            out_entities.append(known[name])

        replacements = [
            _junction_relationship(source, name),
            _junction_relationship(target, name),
        ]
        for new_rel in replacements:
            key = (new_rel.from_entity, new_rel.to_entity)
            if key not in seen:
                seen.add(key)
                out_relationships.append(new_rel)

        original = f'{source} {rel.notation or CANONICAL_TOKENS["many-to-many"]} {target} : "{rel.name}"'
        warnings.append(
            ValidationFinding(
                type="many_to_many",
                severity="warning",
                message=(
                    f"Many-to-many relationship between {source} and {target} "
                    f"was replaced by junction entity {name}"
                ),
                suggestion=(
                    f"Review {name} and add any attributes that belong to the "
                    f"association itself"
                ),
                relationship=rel.describe(),
                auto_fixable=True,
                fix_data={
                    "action": "convert_to_junction_table",
                    "original_relationship": original,
                    "junction_table": name,
                    "new_relationships": [
                        f'{r.from_entity} {r.notation} {r.to_entity} : "{r.name}"'
                        for r in replacements
                    ],
                },
            )
        )

    return out_entities, out_relationships, warnings


class DiagramParser:
    """Parses Mermaid erDiagram text into a ParseResult."""

    def parse(self, text: str) -> ParseResult:
        """
        Parse diagram text.

        Parsing never raises: syntax problems are reported through
        ``success=False`` and the ``errors`` list.

        Args:
            text: Full diagram text

        Returns:
            ParseResult with entities, relationships, warnings and the
            regenerated diagram text
        """
        lines = self._significant_lines(text)
        if not lines or lines[0][1] != DIAGRAM_MARKER:
            logger.warning("Diagram text does not start with the erDiagram marker")
            return ParseResult(
                success=False,
                errors=[f"Missing '{DIAGRAM_MARKER}' declaration at the start of the diagram"],
            )

        entities: List[Entity] = []
        relationships: List[Relationship] = []
        errors: List[str] = []
        state = ScanState()

        for lineno, line in lines[1:]:
            if line == DIAGRAM_MARKER:
                continue
            try:
                state, emitted = step(state, line, lineno)
            except DiagramParseError as e:
                errors.append(str(e))
                continue
            if isinstance(emitted, Entity):
                entities.append(emitted)
            elif isinstance(emitted, Relationship):
                relationships.append(emitted)

        if state.inside_block:
            errors.append(
                str(DiagramParseError(f"Entity block '{state.block}' is never closed", state.opened_at))
            )

        if errors:
            logger.warning(f"Diagram parsing failed with {len(errors)} error(s)")
            return ParseResult(success=False, errors=errors)

        entities, relationships, warnings = expand_many_to_many(entities, relationships)
        logger.info(
            f"Parsed {len(entities)} entities and {len(relationships)} relationships "
            f"({len(warnings)} many-to-many rewritten)"
        )
        return ParseResult(
            success=True,
            entities=entities,
            relationships=relationships,
            warnings=warnings,
            corrected_text=render_diagram(entities, relationships),
        )

    @staticmethod
    def _significant_lines(text: str) -> List[Tuple[int, str]]:
        result = []
        for lineno, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("%%"):
                continue
            result.append((lineno, line))
        return result


def parse_diagram(text: str) -> ParseResult:
    """Parse diagram text with a default parser."""
    return DiagramParser().parse(text)
