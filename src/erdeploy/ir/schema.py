"""Schema model produced by the diagram parser."""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field
from .findings import ValidationFinding

FieldType = Literal[
    "text",
    "integer",
    "decimal",
    "boolean",
    "datetime",
    "identifier",
    "choice",
]

CardinalityType = Literal["one-to-one", "one-to-many", "many-to-one", "many-to-many"]
Side = Literal["one", "many"]


class Attribute(BaseModel):
    """An attribute (column) of an entity."""

    name: str
    type: FieldType = "text"
    is_primary_key: bool = False
    is_foreign_key: bool = False
    is_unique: bool = False
    description: Optional[str] = None
    source_type: Optional[str] = None  # type token as written, e.g. "varchar"
    choice_options: List[str] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return format_display_name(self.name)


class Entity(BaseModel):
    """An entity (table) in the diagram."""

    name: str = Field(min_length=1)
    attributes: List[Attribute] = Field(default_factory=list)
    is_standard: Optional[bool] = None  # set by the classifier
    is_junction: bool = False

    @property
    def display_name(self) -> str:
        return format_display_name(self.name)

    def attribute_names(self) -> List[str]:
        return [a.name for a in self.attributes]

    def has_attribute(self, name: str) -> bool:
        lowered = name.lower()
        return any(a.name.lower() == lowered for a in self.attributes)

    def primary_keys(self) -> List[Attribute]:
        return [a for a in self.attributes if a.is_primary_key]

    def foreign_keys(self) -> List[Attribute]:
        return [a for a in self.attributes if a.is_foreign_key]


class Cardinality(BaseModel):
    """Cardinality of a relationship read from its notation token."""

    type: CardinalityType
    from_side: Side
    to_side: Side


class Relationship(BaseModel):
    """A directed relationship between two entities."""

    from_entity: str
    to_entity: str
    cardinality: Cardinality
    name: str
    notation: Optional[str] = None  # token as written, e.g. "||--o{"

    def describe(self) -> str:
        token = self.notation or "--"
        return f"{self.from_entity} {token} {self.to_entity}"


class ParseResult(BaseModel):
    """Outcome of parsing diagram text."""

    success: bool
    entities: List[Entity] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)
    warnings: List[ValidationFinding] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    corrected_text: Optional[str] = None

    def entity_names(self) -> List[str]:
        return [e.name for e in self.entities]

    def get_entity(self, name: str) -> Optional[Entity]:
        for entity in self.entities:
            if entity.name == name:
                return entity
        return None


def format_display_name(name: str) -> str:
    """Turn a schema name like ``order_line`` into ``Order Line``."""
    return name.replace("_", " ").title()
