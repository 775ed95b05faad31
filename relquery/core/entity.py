"""Entity definitions."""

from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from relquery.core.clause import conjoin
from relquery.core.relation import BelongsTo, HasMany, HasOne, parse_relation, parse_relations
from relquery.validation import MappingError, QueryShapeError

if TYPE_CHECKING:
    from relquery.core.repository import Repository, RepositoryHandle
    from relquery.sql.entity_query import EntityQuery


class Entity(BaseModel):
    """A named mapping of a table and its relations to other entities.

    Entities are immutable; the ``with_*`` methods return derived copies. An
    entity resolves related entities by name through the repository it is
    bound to, so it must belong to a repository before relations can be used.

    Example:
        >>> user = Entity(
        ...     name="user",
        ...     table="users",
        ...     fields=["id", "login", "person_id"],
        ...     relations={"person": {"type": "belongs-to", "entity": "person", "fk": "person_id"}},
        ... )
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(..., description="Unique entity name, also its alias in queries")
    table: str | None = Field(None, description="Table name (schema/table)")
    pk: str = Field(default="id", description="Primary key column")
    fields: tuple[str, ...] | None = Field(None, description="Column names (read from the database when omitted)")
    relations: dict[str, BelongsTo | HasOne | HasMany] = Field(default_factory=dict, description="Named relations")
    filter: Any = Field(default=None, description="Clause every query of this entity is restricted by")
    prepare: Callable[[dict], dict] | None = Field(default=None, description="Applied to payloads before create")
    transform: Callable[[dict], dict] | None = Field(default=None, description="Applied to fetched values")
    adapter: Any = Field(default=None, exclude=True, description="Database adapter")

    _handle: Any = PrivateAttr(default=None)

    @field_validator("relations", mode="before")
    @classmethod
    def parse_relation_descriptors(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {name: parse_relation(relation) for name, relation in value.items()}
        return value

    def __hash__(self) -> int:
        return hash(self.name)

    # Repository binding

    def bind(self, handle: "RepositoryHandle", **updates) -> "Entity":
        """Return a copy bound to a repository handle."""
        entity = self.model_copy(update=updates)
        entity._handle = handle
        return entity

    @property
    def repository(self) -> "Repository":
        if self._handle is None:
            raise MappingError(f"Entity '{self.name}' is not bound to a repository")
        return self._handle.repository

    def relation(self, name: str) -> BelongsTo | HasOne | HasMany:
        """Get a declared relation.

        Raises:
            QueryShapeError: If the relation is not declared
        """
        try:
            return self.relations[name]
        except KeyError:
            available = ", ".join(sorted(self.relations)) or "none"
            raise QueryShapeError(
                f"Entity '{self.name}' has no relation '{name}'. Available relations: {available}"
            ) from None

    def related_entity(self, name: str) -> "Entity":
        """Get the entity at the other end of a relation."""
        relation = self.relation(name)
        repository = self.repository
        if relation.entity not in repository:
            raise MappingError(
                f"Entity '{self.name}': relation '{name}' references unknown entity '{relation.entity}'"
            )
        return repository[relation.entity]

    # Derived entities

    def with_filter(self, where: Any) -> "Entity":
        """Return an entity whose queries are further restricted by ``where``."""
        return self.model_copy(update={"filter": conjoin(self.filter, where)})

    def with_relations(self, relations: Mapping[str, Any]) -> "Entity":
        """Return an entity with additional (or replaced) relations."""
        merged = {**self.relations, **parse_relations(relations)}
        if self._handle is not None:
            names = set(self.repository)
            for name, relation in merged.items():
                if relation.entity not in names:
                    raise MappingError(
                        f"Entity '{self.name}': relation '{name}' references unknown entity '{relation.entity}'"
                    )
        return self.model_copy(update={"relations": merged})

    def with_eager(self, names: str | Iterable[str]) -> "Entity":
        """Return an entity that always joins the named relations."""
        if isinstance(names, str):
            names = [names]
        relations = dict(self.relations)
        for name in names:
            relation = self.relation(name)
            if isinstance(relation, HasMany):
                raise QueryShapeError(
                    f"Relation '{name}' of entity '{self.name}' is has_many; "
                    f"only belongs_to and has_one relations can be eager"
                )
            relations[name] = relation.model_copy(update={"eager": True})
        return self.model_copy(update={"relations": relations})

    # Queries

    def find(self, where: Any = None, fields: Any = None) -> "EntityQuery":
        """Build a query over this entity.

        Args:
            where: Clause; fields are relative to this entity and may reach
                related entities (``"person/name"``)
            fields: Projection (defaults to own and eager relation fields)
        """
        from relquery.sql.entity_query import EntityQuery

        query = EntityQuery.for_entity(self).restrict(where)
        if fields is not None:
            query = query.project(fields)
        return query

    def fetch_by_id(self, id: Any):
        """Fetch one instance by primary key, or None."""
        rows = self.find({self.pk: id}).fetch()
        return rows[0] if rows else None

    def find_related(self, relation: str, where: Any = None) -> "EntityQuery":
        """Build a query over the entities related to the ones matched by ``where``.

        Unqualified fields refer to the related entity; fields prefixed with
        this entity's name refer to this entity.
        """
        from relquery.sql.entity_query import EntityQuery

        return EntityQuery.for_relation(self, relation).restrict(where)

    # Commands

    def create(self, data: Mapping):
        """Build the command creating ``data`` and its embedded relations."""
        from relquery.sql.aggregate import plan_create

        return plan_create(self, data)

    def update(self, patch: Mapping, where: Any = None):
        """Build the command applying ``patch`` to the rows matched by ``where``."""
        from relquery.sql.aggregate import plan_update

        return plan_update(self, patch, where)

    def delete(self, where: Any = None):
        """Build the command deleting the rows matched by ``where``."""
        from relquery.sql.aggregate import plan_delete

        return plan_delete(self, where)

    def create_relation(self, id: Any, relation: str, rel_id: Any):
        """Build the command linking entity ``id`` to related entity ``rel_id``."""
        from relquery.sql.aggregate import plan_link

        return plan_link(self, id, relation, rel_id)

    def delete_relation(self, id: Any, relation: str, rel_id: Any):
        """Build the command unlinking entity ``id`` from related entity ``rel_id``."""
        from relquery.sql.aggregate import plan_unlink

        return plan_unlink(self, id, relation, rel_id)
