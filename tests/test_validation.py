"""Tests for entity validation."""

from relquery import BelongsTo, Entity
from relquery.validation import (
    CompileError,
    MappingError,
    QueryShapeError,
    RelqueryError,
    TransactionError,
    validate_entity,
    validate_repository,
)


def test_valid_entity():
    """Test that a complete entity has no errors."""
    entity = Entity(name="user", table="users", relations={"person": BelongsTo(entity="person", fk="person_id")})
    assert validate_entity(entity, {"user", "person"}) == []


def test_missing_table_and_pk():
    """Test entity-level requirements."""
    errors = validate_entity(Entity(name="user", pk=""), {"user"})
    assert errors == [
        "Entity 'user' must have a table defined",
        "Entity 'user' must have a primary key defined",
    ]


def test_unknown_relation_target_lists_available():
    """Test that errors name the entities that do exist."""
    entity = Entity(name="user", table="users", relations={"person": BelongsTo(entity="persn", fk="person_id")})
    errors = validate_entity(entity, {"user", "person"})
    assert len(errors) == 1
    assert "references unknown entity 'persn'" in errors[0]
    assert "Available entities: person, user" in errors[0]


def test_validate_repository_collects_all_errors():
    """Test that every invalid entity is reported."""
    entities = {
        "user": Entity(name="user"),
        "post": Entity(name="post", table="posts", relations={"author": BelongsTo(entity="author", fk="author_id")}),
    }
    errors = validate_repository(entities)
    assert len(errors) == 2


def test_error_hierarchy():
    """Test that all errors share a base class."""
    for error in (MappingError, QueryShapeError, CompileError, TransactionError):
        assert issubclass(error, RelqueryError)
