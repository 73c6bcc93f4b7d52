"""Notation tables for relationship tokens and attribute types."""

import re
from typing import Dict, List, Optional, Tuple
from erdeploy.ir.schema import Cardinality, CardinalityType, FieldType

CARDINALITY_TOKENS: Dict[str, Cardinality] = {
    "||--||": Cardinality(type="one-to-one", from_side="one", to_side="one"),
    "||--o{": Cardinality(type="one-to-many", from_side="one", to_side="many"),
    "||--|{": Cardinality(type="one-to-many", from_side="one", to_side="many"),
    "}o--||": Cardinality(type="many-to-one", from_side="many", to_side="one"),
    "}|--||": Cardinality(type="many-to-one", from_side="many", to_side="one"),
    "}o--o{": Cardinality(type="many-to-many", from_side="many", to_side="many"),
}

CANONICAL_TOKENS: Dict[CardinalityType, str] = {
    "one-to-one": "||--||",
    "one-to-many": "||--o{",
    "many-to-one": "}o--||",
    "many-to-many": "}o--o{",
}

TYPE_ALIASES: Dict[str, FieldType] = {
    "string": "text",
    "text": "text",
    "varchar": "text",
    "nvarchar": "text",
    "memo": "text",
    "int": "integer",
    "integer": "integer",
    "long": "integer",
    "bigint": "integer",
    "decimal": "decimal",
    "float": "decimal",
    "double": "decimal",
    "money": "decimal",
    "number": "decimal",
    "bool": "boolean",
    "boolean": "boolean",
    "datetime": "datetime",
    "date": "datetime",
    "timestamp": "datetime",
    "dateonly": "datetime",
    "guid": "identifier",
    "uuid": "identifier",
    "uniqueidentifier": "identifier",
    "choice": "choice",
    "picklist": "choice",
    "enum": "choice",
}

CANONICAL_TYPE_TOKENS: Dict[FieldType, str] = {
    "text": "string",
    "integer": "int",
    "decimal": "decimal",
    "boolean": "boolean",
    "datetime": "datetime",
    "identifier": "guid",
    "choice": "choice",
}

_CHOICE_TOKEN_RE = re.compile(r"^(\w+)\((.*)\)$")


def lookup_cardinality(token: str) -> Optional[Cardinality]:
    """Resolve a relationship token; dotted (non-identifying) lines read like solid ones."""
    return CARDINALITY_TOKENS.get(token.replace("..", "--"))


def map_type(token: str) -> Tuple[FieldType, List[str]]:
    """
    Map a type token to a field type.

    Args:
        token: Type as written in the diagram, e.g. ``varchar`` or ``choice(a, b)``

    Returns:
        Tuple of (field type, choice options). Unknown types become ``text``.
    """
    options: List[str] = []
    base = token
    match = _CHOICE_TOKEN_RE.match(token)
    if match:
        base = match.group(1)
        options = [
            opt.strip().strip("'\"")
            for opt in match.group(2).split(",")
            if opt.strip().strip("'\"")
        ]
    base = base.rstrip("[]").lower()
    field_type = TYPE_ALIASES.get(base, "text")
    if field_type != "choice":
        options = []
    return field_type, options
