"""Repositories: named sets of entities that reference each other."""

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any

from relquery.core.entity import Entity
from relquery.validation import MappingError, validate_repository

logger = logging.getLogger(__name__)


class RepositoryHandle:
    """Write-once reference to the repository its entities belong to.

    Entities are bound to the handle before the repository exists, so that
    entities can reference each other regardless of definition order.
    """

    def __init__(self):
        self._repository: "Repository | None" = None

    def bind(self, repository: "Repository") -> None:
        if self._repository is not None:
            raise MappingError("Repository handle is already bound")
        self._repository = repository

    @property
    def repository(self) -> "Repository":
        if self._repository is None:
            raise MappingError("Repository is still being built")
        return self._repository


class Repository(Mapping):
    """Read-only mapping of entity name to Entity."""

    def __init__(self, entities: Mapping[str, Entity], builder: Callable[..., "Repository"], options: dict):
        self._entities = dict(entities)
        self._builder = builder
        self._options = dict(options)

    def __getitem__(self, name: str) -> Entity:
        return self._entities[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def __repr__(self) -> str:
        return f"Repository({', '.join(self._entities)})"

    def only(self, *names: str) -> "Repository":
        """Build a repository with only the named entities."""
        missing = [name for name in names if name not in self._entities]
        if missing:
            raise MappingError(f"Unknown entities: {', '.join(missing)}")
        return self._builder({name: self._entities[name] for name in names}, **self._options)

    def exclude(self, *names: str) -> "Repository":
        """Build a repository without the named entities."""
        return self._builder(
            {name: entity for name, entity in self._entities.items() if name not in names}, **self._options
        )

    def add(self, entities: Mapping[str, Any] | Iterable[Entity]) -> "Repository":
        """Build a repository with additional (or replaced) entities."""
        return self._builder({**self._entities, **_as_entities(entities)}, **self._options)


def _as_entities(entities: Mapping[str, Any] | Iterable[Entity]) -> dict[str, Entity]:
    if isinstance(entities, Mapping):
        parsed = {}
        for name, entity in entities.items():
            if isinstance(entity, Entity):
                parsed[name] = entity
            else:
                parsed[name] = Entity(**{"name": name, **entity})
        return parsed
    return {entity.name: entity for entity in entities}


def _columns(adapter: Any, table: str) -> tuple[str, ...]:
    schema, _, table_name = table.rpartition("/")
    return tuple(column["column_name"] for column in adapter.get_columns(table_name, schema or None))


def build_repository(entities: Mapping[str, Any] | Iterable[Entity], adapter: Any = None) -> Repository:
    """Build a SQL repository from entity definitions.

    Args:
        entities: Entities, or a mapping of name to Entity or descriptor dict
        adapter: Adapter the entities execute through; also used to read
            the columns of entities defined without fields

    Raises:
        MappingError: If any entity is invalid
    """
    parsed = _as_entities(entities)
    errors = validate_repository(parsed)
    if errors:
        raise MappingError("Invalid entity mappings:\n  " + "\n  ".join(errors))

    handle = RepositoryHandle()
    bound = {}
    for name, entity in parsed.items():
        updates = {}
        if entity.adapter is None and adapter is not None:
            updates["adapter"] = adapter
        if entity.fields is None and adapter is not None:
            updates["fields"] = _columns(adapter, entity.table)
        bound[name] = entity.bind(handle, **updates)

    repository = Repository(bound, build_repository, {"adapter": adapter})
    handle.bind(repository)
    logger.debug(f"Built repository with {len(bound)} entities: {', '.join(bound)}")
    return repository
