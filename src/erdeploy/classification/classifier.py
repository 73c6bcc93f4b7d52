"""Classify diagram entities as standard or custom."""

from typing import List, Optional
from pydantic import BaseModel, Field

from erdeploy.config.logging import get_logger
from erdeploy.ir.schema import Entity
from .registry import MatchType, StandardEntityRegistry, default_registry

logger = get_logger(__name__)


class ClassificationMatch(BaseModel):
    """A diagram entity recognised as a standard entity."""

    entity: Entity
    logical_name: str
    display_name: str
    description: str
    match_type: MatchType
    confidence: float
    key_attributes: List[str] = Field(default_factory=list)


class ClassificationResult(BaseModel):
    """Partition of diagram entities into standard matches and custom entities."""

    entities: List[Entity] = Field(default_factory=list)  # tagged copies, input order
    matches: List[ClassificationMatch] = Field(default_factory=list)
    custom_entities: List[Entity] = Field(default_factory=list)

    def standard_names(self) -> List[str]:
        return [m.entity.name for m in self.matches]


class EntityClassifier:
    """Matches entities against a StandardEntityRegistry."""

    def __init__(self, registry: Optional[StandardEntityRegistry] = None):
        self.registry = registry or default_registry()

    def classify(self, entities: List[Entity]) -> ClassificationResult:
        """
        Classify entities without modifying them.

        Args:
            entities: Entities from a ParseResult

        Returns:
            ClassificationResult whose ``entities`` carry ``is_standard``
        """
        result = ClassificationResult()
        for entity in entities:
            found = None if entity.is_junction else self.registry.lookup(entity.name)
            tagged = entity.model_copy(update={"is_standard": found is not None})
            result.entities.append(tagged)
            if found is None:
                result.custom_entities.append(tagged)
                continue
            record, match_type = found
            confidence = (
                record.exact_confidence if match_type == "exact" else record.alias_confidence
            )
            result.matches.append(
                ClassificationMatch(
                    entity=tagged,
                    logical_name=record.logical_name,
                    display_name=record.display_name,
                    description=record.description,
                    match_type=match_type,
                    confidence=confidence,
                    key_attributes=list(record.key_attributes),
                )
            )
            logger.debug(f"{entity.name} matched standard entity {record.logical_name} ({match_type})")

        logger.info(
            f"Classified {len(entities)} entities: {len(result.matches)} standard, "
            f"{len(result.custom_entities)} custom"
        )
        return result


def classify_entities(
    entities: List[Entity], registry: Optional[StandardEntityRegistry] = None
) -> ClassificationResult:
    """Classify entities with the given (or default) registry."""
    return EntityClassifier(registry).classify(entities)
