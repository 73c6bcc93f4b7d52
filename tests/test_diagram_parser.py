"""Tests for the erDiagram parser."""

from erdeploy.parsing import DiagramParser, ScanState, parse_diagram, render_diagram, step
from erdeploy.parsing.diagram_parser import junction_name


def test_many_to_many_becomes_junction(blog_diagram):
    """Test that a many-to-many relationship is replaced by a junction entity."""
    result = parse_diagram(blog_diagram)

    assert result.success
    assert result.entity_names() == ["POST", "TAG", "POST_TAG"]

    junction = result.get_entity("POST_TAG")
    assert junction.is_junction
    assert [a.name for a in junction.attributes] == ["id", "post_id", "tag_id"]
    assert junction.attributes[0].is_primary_key
    assert junction.attributes[0].description == "Unique identifier"
    assert junction.attributes[1].is_foreign_key
    assert junction.attributes[1].description == "Foreign key to POST"
    assert junction.attributes[2].description == "Foreign key to TAG"
    assert all(a.type == "identifier" for a in junction.attributes)

    pairs = [(r.from_entity, r.to_entity, r.name) for r in result.relationships]
    assert pairs == [("POST", "POST_TAG", "has"), ("TAG", "POST_TAG", "has")]
    assert all(r.cardinality.type == "one-to-many" for r in result.relationships)
    assert all(r.cardinality.from_side == "one" for r in result.relationships)
    assert all(r.cardinality.to_side == "many" for r in result.relationships)


def test_many_to_many_warning(blog_diagram):
    """Test the warning emitted for a rewritten relationship."""
    result = parse_diagram(blog_diagram)

    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert warning.type == "many_to_many"
    assert warning.severity == "warning"
    assert warning.auto_fixable
    assert warning.fix_data["junction_table"] == "POST_TAG"
    assert warning.fix_data["original_relationship"] == 'POST }o--o{ TAG : "tagged_with"'
    assert warning.fix_data["new_relationships"] == [
        'POST ||--o{ POST_TAG : "has"',
        'TAG ||--o{ POST_TAG : "has"',
    ]
    assert warning.id.startswith("finding_")


def test_corrected_text_replaces_many_to_many(blog_diagram):
    """Test that the corrected diagram contains the junction instead of the original."""
    corrected = parse_diagram(blog_diagram).corrected_text

    assert corrected.startswith("erDiagram")
    assert "POST_TAG {" in corrected
    assert 'POST ||--o{ POST_TAG : "has"' in corrected
    assert 'TAG ||--o{ POST_TAG : "has"' in corrected
    assert "}o--o{" not in corrected


def test_corrected_text_reparses_without_rewrites(blog_diagram):
    """Test that parsing the corrected diagram is stable."""
    first = parse_diagram(blog_diagram)
    second = parse_diagram(first.corrected_text)

    assert second.success
    assert second.warnings == []
    assert second.entity_names() == first.entity_names()
    for before, after in zip(first.entities, second.entities):
        assert [(a.name, a.type, a.is_primary_key, a.is_foreign_key) for a in before.attributes] == [
            (a.name, a.type, a.is_primary_key, a.is_foreign_key) for a in after.attributes
        ]
    assert [(r.from_entity, r.to_entity, r.name) for r in second.relationships] == [
        (r.from_entity, r.to_entity, r.name) for r in first.relationships
    ]
    assert second.corrected_text == first.corrected_text


def test_single_letter_junction_name():
    """Test that short names are concatenated without a separator."""
    result = parse_diagram("erDiagram\nA {\nint id PK\n}\nB {\nint id PK\n}\nA }o--o{ B\n")

    assert result.success
    assert result.entity_names() == ["A", "B", "AB"]
    assert junction_name("Student", "Course") == "StudentCourse"
    assert junction_name("USER", "ROLE") == "USER_ROLE"


def test_each_many_to_many_gets_its_own_junction():
    """Test that N many-to-many relationships produce N junctions and N warnings."""
    text = """erDiagram
    STUDENT {
        int id PK
    }
    COURSE {
        int id PK
    }
    INSTRUCTOR {
        int id PK
    }
    STUDENT }o--o{ COURSE : enrolls
    INSTRUCTOR }o--o{ COURSE : teaches
    """
    result = parse_diagram(text)

    assert result.success
    assert result.entity_names() == ["STUDENT", "COURSE", "INSTRUCTOR", "STUDENT_COURSE", "INSTRUCTOR_COURSE"]
    assert len(result.warnings) == 2
    assert len(result.relationships) == 4
    assert {w.fix_data["junction_table"] for w in result.warnings} == {
        "STUDENT_COURSE",
        "INSTRUCTOR_COURSE",
    }
    assert all(r.cardinality.type != "many-to-many" for r in result.relationships)


def test_attribute_types_and_constraints():
    """Test type mapping, key flags, descriptions and choice options."""
    text = """erDiagram
    %% customer master data
    Customer {
        guid customer_id PK "Primary key"
        varchar email UK
        decimal credit_limit
        choice(Gold, Silver) tier
        int age
        date joined
        bool active
        blob photo
        uuid account_id PK, FK
    }
    """
    result = parse_diagram(text)

    assert result.success
    attrs = {a.name: a for a in result.get_entity("Customer").attributes}
    assert attrs["customer_id"].type == "identifier"
    assert attrs["customer_id"].is_primary_key
    assert attrs["customer_id"].description == "Primary key"
    assert attrs["email"].type == "text"
    assert attrs["email"].is_unique
    assert attrs["credit_limit"].type == "decimal"
    assert attrs["tier"].type == "choice"
    assert attrs["tier"].choice_options == ["Gold", "Silver"]
    assert attrs["age"].type == "integer"
    assert attrs["joined"].type == "datetime"
    assert attrs["active"].type == "boolean"
    assert attrs["photo"].type == "text"
    assert attrs["account_id"].is_primary_key and attrs["account_id"].is_foreign_key


def test_relationship_names_and_cardinalities():
    """Test default names, quoted labels and the six notations."""
    text = """erDiagram
    A ||--|| B
    A ||--o{ B : "owns"
    A ||--|{ B : lists
    A }o--|| B
    A }|--|| B
    """
    result = parse_diagram(text)

    assert result.success
    assert [r.name for r in result.relationships] == ["A_B", "owns", "lists", "A_B", "A_B"]
    assert [r.cardinality.type for r in result.relationships] == [
        "one-to-one",
        "one-to-many",
        "one-to-many",
        "many-to-one",
        "many-to-one",
    ]


def test_missing_marker_fails():
    """Test that text without the erDiagram marker is rejected."""
    result = parse_diagram("Customer {\n string id PK\n}\n")

    assert not result.success
    assert "erDiagram" in result.errors[0]
    assert result.entities == []


def test_unknown_cardinality_fails():
    """Test that an unsupported relationship token is a parse error."""
    result = parse_diagram("erDiagram\nA |o--o| B\n")

    assert not result.success
    assert "Unknown cardinality notation '|o--o|'" in result.errors[0]
    assert result.errors[0].startswith("Line 2")


def test_unbalanced_blocks_fail():
    """Test unclosed blocks, stray closers and nested openers."""
    unclosed = parse_diagram("erDiagram\nA {\nstring id PK\n")
    assert not unclosed.success
    assert "never closed" in unclosed.errors[0]
    assert unclosed.errors[0].startswith("Line 2")

    stray = parse_diagram("erDiagram\n}\n")
    assert not stray.success
    assert "without an open entity block" in stray.errors[0]

    nested = parse_diagram("erDiagram\nA {\nB {\n}\n")
    assert not nested.success
    assert "Nested block" in nested.errors[0]


def test_unrecognized_line_fails():
    """Test that lines that are neither blocks nor relationships are errors."""
    result = parse_diagram("erDiagram\nthis is not valid\n")

    assert not result.success
    assert "Unrecognized line" in result.errors[0]


def test_validation_problems_do_not_fail_parsing():
    """Test that duplicates and dangling references are left to the validators."""
    text = """erDiagram
    Order {
        int id PK
        int id
    }
    Order ||--o{ Ghost : haunts
    """
    result = parse_diagram(text)

    assert result.success
    assert [a.name for a in result.get_entity("Order").attributes] == ["id", "id"]
    assert result.relationships[0].to_entity == "Ghost"


def test_step_is_pure():
    """Test that the scanner step returns new states without touching the old one."""
    start = ScanState()
    opened, emitted = step(start, "Order {", 3)
    assert emitted is None
    assert opened.block == "Order" and opened.opened_at == 3
    assert not start.inside_block

    with_attr, _ = step(opened, "int id PK", 4)
    assert len(with_attr.attributes) == 1
    assert opened.attributes == ()

    closed, entity = step(with_attr, "}", 5)
    assert not closed.inside_block
    assert entity.name == "Order"
    assert entity.attribute_names() == ["id"]


def test_parser_class_and_renderer_agree():
    """Test that rendering parsed entities reproduces the corrected text."""
    result = DiagramParser().parse("erDiagram\nOrder {\nint id PK\nstring note \"Free text\"\n}\n")

    assert render_diagram(result.entities, result.relationships) == result.corrected_text
    assert 'int id PK' in result.corrected_text
    assert 'string note "Free text"' in result.corrected_text
