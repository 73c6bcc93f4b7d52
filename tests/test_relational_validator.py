"""Tests for relationship validation."""

from erdeploy.ir.schema import Attribute, Cardinality, Entity, Relationship
from erdeploy.validation import find_cycles, validate_relationships

ONE_TO_MANY = Cardinality(type="one-to-many", from_side="one", to_side="many")
ONE_TO_ONE = Cardinality(type="one-to-one", from_side="one", to_side="one")
MANY_TO_MANY = Cardinality(type="many-to-many", from_side="many", to_side="many")


def _entity(name, *fks, standard=None):
    attributes = [Attribute(name="id", type="identifier", is_primary_key=True)]
    attributes += [Attribute(name=fk, type="identifier", is_foreign_key=True) for fk in fks]
    return Entity(name=name, attributes=attributes, is_standard=standard)


def _rel(a, b, cardinality=ONE_TO_MANY, name="rel"):
    return Relationship(from_entity=a, to_entity=b, cardinality=cardinality, name=name)


def _types(result):
    return [w.type for w in result.warnings]


def test_cycle_is_detected():
    """Test that A -> B -> C -> A is reported with its path."""
    entities = [_entity("A", "b_id"), _entity("B", "c_id"), _entity("C", "a_id")]
    result = validate_relationships(entities, [_rel("A", "B"), _rel("B", "C"), _rel("C", "A")])

    cycles = [w for w in result.warnings if w.type == "circular_dependency"]
    assert len(cycles) >= 1
    assert cycles[0].context["cycle"] == ["A", "B", "C", "A"]
    assert cycles[0].message == "Circular dependency detected: A → B → C → A."
    assert result.is_valid


def test_find_cycles_visits_every_root():
    """Test that a cycle not reachable from the first node is still found."""
    cycles = find_cycles([_rel("X", "Y"), _rel("P", "Q"), _rel("Q", "P")])

    assert cycles == [["P", "Q", "P"]]


def test_all_standard_entities_skip_checks():
    """Test that a diagram of only standard entities is not checked."""
    entities = [_entity("Account", standard=True), _entity("Contact", standard=True)]
    result = validate_relationships(entities, [_rel("Account", "Contact"), _rel("Account", "Ghost")])

    assert result.is_valid
    assert result.warnings == []


def test_missing_foreign_key():
    """Test the missing foreign key warning and its fix data."""
    result = validate_relationships([_entity("Customer"), _entity("Order")], [_rel("Customer", "Order")])

    finding = next(w for w in result.warnings if w.type == "missing_foreign_key")
    assert finding.fix_data == {
        "action": "add_foreign_key",
        "from_entity": "Customer",
        "to_entity": "Order",
        "foreign_key_name": "order_id",
    }


def test_foreign_key_present():
    """Test that a matching or any foreign key satisfies the check."""
    by_name = validate_relationships([_entity("Customer", "order_id"), _entity("Order")], [_rel("Customer", "Order")])
    assert "missing_foreign_key" not in _types(by_name)

    plain = Entity(name="Customer", attributes=[Attribute(name="id", is_primary_key=True), Attribute(name="order_id")])
    by_attr_name = validate_relationships([plain, _entity("Order")], [_rel("Customer", "Order")])
    assert "missing_foreign_key" not in _types(by_attr_name)


def test_one_to_one_accepts_key_on_target():
    """Test that one-to-one relationships may keep the key on the other side."""
    result = validate_relationships(
        [_entity("Person"), _entity("Passport", "person_id")],
        [_rel("Person", "Passport", ONE_TO_ONE)],
    )

    assert "missing_foreign_key" not in _types(result)


def test_standard_endpoint_skips_foreign_key_check():
    """Test that relationships touching standard entities are not FK-checked."""
    result = validate_relationships(
        [_entity("Account", standard=True), _entity("Project", standard=False)],
        [_rel("Account", "Project")],
    )

    assert "missing_foreign_key" not in _types(result)


def test_orphaned_relationship_is_error_severity():
    """Test that dangling relationships are error-severity findings."""
    result = validate_relationships([_entity("Order", "ghost_id")], [_rel("Order", "Ghost")])

    finding = next(w for w in result.warnings if w.type == "orphaned_relationship")
    assert finding.severity == "error"
    assert finding.context["missing_entities"] == ["Ghost"]
    assert result.is_valid


def test_many_to_many_flagged():
    """Test that an unconverted many-to-many relationship is flagged as info."""
    result = validate_relationships(
        [_entity("Student", "course_id"), _entity("Course")],
        [_rel("Student", "Course", MANY_TO_MANY)],
    )

    finding = next(w for w in result.warnings if w.type == "many_to_many")
    assert finding.severity == "info"
    assert finding.fix_data["junction_table"] == "StudentCourse"


def test_duplicate_relationships_in_either_direction():
    """Test that the first relationship between a pair wins."""
    result = validate_relationships(
        [_entity("A", "b_id"), _entity("B", "a_id")],
        [_rel("A", "B", name="first"), _rel("B", "A", name="second"), _rel("A", "B", name="third")],
    )

    duplicates = [w for w in result.warnings if w.type == "duplicate_relationship"]
    assert [d.fix_data["relationship_index"] for d in duplicates] == [1, 2]
    assert all(d.fix_data["first_index"] == 0 for d in duplicates)


def test_long_chain_is_checked_without_recursion():
    """Test that a chain deeper than the recursion limit is validated and its closing cycle found."""
    names = [f"E{i}" for i in range(1500)]
    entities = [_entity(name, f"{nxt.lower()}_id") for name, nxt in zip(names, names[1:] + names[:1])]
    chain = [_rel(a, b) for a, b in zip(names, names[1:])]

    result = validate_relationships(entities, chain)
    assert result.is_valid
    assert "circular_dependency" not in _types(result)

    cycles = find_cycles(chain + [_rel(names[-1], names[0])])
    assert len(cycles) == 1
    assert cycles[0][0] == cycles[0][-1] == "E0"
    assert len(cycles[0]) == 1501
