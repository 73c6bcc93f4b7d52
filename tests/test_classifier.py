"""Tests for the standard entity registry and classifier."""

import pytest
from erdeploy.classification import (
    EntityClassifier,
    StandardEntity,
    StandardEntityRegistry,
    classify_entities,
    default_registry,
)
from erdeploy.ir.schema import Entity


def test_exact_and_alias_matches():
    """Test case-insensitive exact matches and alias matches."""
    entities = [Entity(name="ACCOUNT"), Entity(name="Customer"), Entity(name="Widget")]
    result = classify_entities(entities)

    assert [m.entity.name for m in result.matches] == ["ACCOUNT", "Customer"]
    assert [m.logical_name for m in result.matches] == ["account", "account"]
    assert [m.match_type for m in result.matches] == ["exact", "alias"]
    assert all(m.confidence == 1.0 for m in result.matches)
    assert [e.name for e in result.custom_entities] == ["Widget"]
    assert result.standard_names() == ["ACCOUNT", "Customer"]


def test_match_carries_registry_metadata():
    """Test that matches expose key attributes and descriptions."""
    match = classify_entities([Entity(name="Person")]).matches[0]

    assert match.logical_name == "contact"
    assert match.display_name == "Contact"
    assert "fullname" in match.key_attributes
    assert match.description


def test_classification_does_not_mutate_inputs():
    """Test that tagging happens on copies."""
    entities = [Entity(name="Lead"), Entity(name="Gadget")]
    result = EntityClassifier().classify(entities)

    assert [e.is_standard for e in entities] == [None, None]
    assert [e.is_standard for e in result.entities] == [True, False]


def test_junctions_are_always_custom():
    """Test that synthesized junction entities never match the registry."""
    result = classify_entities([Entity(name="Deal", is_junction=True)])

    assert result.matches == []
    assert result.custom_entities[0].is_standard is False


def test_registry_lookup():
    """Test direct registry lookups."""
    registry = default_registry()

    assert registry.lookup("opportunity")[1] == "exact"
    assert registry.lookup("deal")[0].logical_name == "opportunity"
    assert registry.lookup("spaceship") is None
    assert "Prospect" in registry
    assert registry.get("LEAD").display_name == "Lead"
    assert len(registry.all()) == len(registry)


def test_first_registered_alias_wins():
    """Test that an alias claimed twice keeps its first owner."""
    registry = StandardEntityRegistry(
        [
            StandardEntity("alpha", "Alpha", "First", aliases=("Shared",)),
            StandardEntity("beta", "Beta", "Second", aliases=("Shared", "B")),
        ]
    )

    assert registry.lookup("shared")[0].logical_name == "alpha"
    assert registry.lookup("b")[0].logical_name == "beta"


def test_duplicate_registry_records_rejected():
    """Test that two records with the same logical name are refused."""
    with pytest.raises(ValueError):
        StandardEntityRegistry(
            [StandardEntity("alpha", "Alpha", "x"), StandardEntity("ALPHA", "Alpha", "y")]
        )
