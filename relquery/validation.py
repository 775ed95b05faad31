"""Validation and error handling for entity mappings and queries."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from relquery.core.entity import Entity


class RelqueryError(Exception):
    """Base class for errors raised by relquery."""

    pass


class MappingError(RelqueryError):
    """Raised when an entity or relation descriptor is malformed."""

    pass


class QueryShapeError(RelqueryError):
    """Raised when a query or command cannot be built for the requested shape."""

    pass


class CompileError(RelqueryError):
    """Raised when a field, clause or source tree cannot be rendered to SQL."""

    pass


class TransactionError(RelqueryError):
    """Raised when a transaction cannot be started or executed."""

    pass


def validate_entity(entity: "Entity", entity_names: set[str]) -> list[str]:
    """Validate an entity against the set of entity names it may reference.

    Args:
        entity: Entity to validate
        entity_names: Names of all entities in the same repository

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    if not entity.table:
        errors.append(f"Entity '{entity.name}' must have a table defined")

    if not entity.pk:
        errors.append(f"Entity '{entity.name}' must have a primary key defined")

    for name, relation in entity.relations.items():
        if relation.entity not in entity_names:
            available = ", ".join(sorted(entity_names))
            errors.append(
                f"Entity '{entity.name}': relation '{name}' references unknown entity '{relation.entity}'. "
                f"Available entities: {available}"
            )

    return errors


def validate_repository(entities: dict[str, "Entity"]) -> list[str]:
    """Validate a set of entities that reference each other by name.

    Args:
        entities: Mapping of entity name to entity

    Returns:
        List of validation errors (empty if valid)
    """
    names = set(entities)
    errors = []
    for entity in entities.values():
        errors.extend(validate_entity(entity, names))
    return errors
