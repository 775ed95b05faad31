"""Queries over entities."""

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, NamedTuple

from relquery.core.clause import (
    Aliased,
    Field,
    Join,
    conjoin,
    ensure_prefixed,
    local_name,
    map_fields,
    namespace_of,
    namespaces,
    prefix,
    segments,
)
from relquery.core.instance import materialize
from relquery.core.relation import BelongsTo
from relquery.sql.format import SQLFormatter
from relquery.sql.joins import build_source, default_fields
from relquery.sql.query import Query, normalize_fields
from relquery.validation import QueryShapeError

if TYPE_CHECKING:
    from relquery.core.entity import Entity


class RelatedLink(NamedTuple):
    """The base side of a relation navigation."""

    base: "Entity"
    alias: str
    name: str
    relation: Any


@dataclass(frozen=True)
class EntityQuery(Query):
    """A Query over an entity whose fields are relative to that entity.

    Fields are qualified with the entity alias as they are added, and the
    joins needed for the referenced relations are worked out when the query
    is rendered. Fetched rows are returned as Instances.
    """

    entity: Any = field(default=None, compare=False, repr=False)
    alias: str | None = None
    link: RelatedLink | None = field(default=None, compare=False, repr=False)

    @classmethod
    def for_entity(cls, entity: "Entity") -> "EntityQuery":
        return cls(
            entity=entity,
            alias=entity.name,
            where=ensure_prefixed(entity.name, entity.filter),
            adapter=entity.adapter,
        )

    @classmethod
    def for_relation(cls, entity: "Entity", name: str) -> "EntityQuery":
        relation = entity.relation(name)
        related = entity.related_entity(name)
        where = conjoin(
            ensure_prefixed(name, related.filter),
            ensure_prefixed(name, relation.filter),
        )
        return cls(
            entity=related,
            alias=name,
            where=where,
            link=RelatedLink(entity, entity.name, name, relation),
            adapter=related.adapter or entity.adapter,
        )

    # Qualification

    def qualify(self, tree: Any) -> Any:
        """Qualify the fields of ``tree`` relative to this query's entity."""
        roots = {self.alias}
        if self.link is not None:
            roots.add(self.link.alias)

        def qualify_name(name: str) -> str:
            if name == "*":
                return name
            parts = segments(namespace_of(name))
            if self.link is not None and parts[:2] == [self.link.alias, self.link.name]:
                return prefix(".".join(parts[1:]), local_name(name))
            if parts and parts[0] in roots:
                return name
            return prefix(self.alias, name)

        return map_fields(tree, qualify_name)

    def restrict(self, clause: Any, exact: bool = False) -> "EntityQuery":
        clause = self.qualify(clause)
        if exact:
            clause = conjoin(self._base_filters(), clause)
        return super().restrict(clause, exact=exact).checked()

    def order_by(self, order: Any) -> "EntityQuery":
        return super().order_by(self.qualify(order)).checked()

    def project(self, fields: Any) -> "EntityQuery":
        projected = []
        for item in normalize_fields(fields):
            item = self.qualify(item)
            if isinstance(item, (str, Field)):
                item = Aliased(item, str(item))
            projected.append(item)
        return replace(self, fields=tuple(projected)).checked()

    def join(self, op: str, source: Any, on: Any = None) -> "EntityQuery":
        raise QueryShapeError("Entity queries compute their own joins; declare a relation instead")

    def checked(self) -> "EntityQuery":
        """Resolve the joins now, so a has_many or undeclared relation fails here."""
        self.build_source()
        return self

    def _base_filters(self) -> Any:
        if self.link is None:
            return ensure_prefixed(self.alias, self.entity.filter)
        return conjoin(
            ensure_prefixed(self.alias, self.entity.filter),
            ensure_prefixed(self.alias, self.link.relation.filter),
        )

    # Rendering

    def references(self) -> set[str]:
        return namespaces(self.build_where()) | namespaces(self.order) | namespaces(self.fields)

    def build_source(self) -> Any:
        refs = self.references()
        if self.link is None:
            return build_source(self.entity, self.alias, refs)

        base, base_alias, name, relation = self.link
        related_source = build_source(self.entity, self.alias, refs)
        if getattr(relation, "join_table", None):
            link_alias = local_name(relation.join_table)
            source = Join(
                related_source,
                "join",
                (relation.join_table, link_alias),
                {prefix(self.alias, self.entity.pk): Field(prefix(link_alias, relation.rfk))},
            )
            on = {prefix(base_alias, base.pk): Field(prefix(link_alias, relation.fk))}
        elif isinstance(relation, BelongsTo):
            source = related_source
            on = {prefix(base_alias, relation.fk): Field(prefix(self.alias, self.entity.pk))}
        else:
            source = related_source
            on = {prefix(base_alias, base.pk): Field(prefix(self.alias, relation.fk))}
        source = Join(source, "join", (base.table, base_alias), on)
        return build_source(base, base_alias, refs, source=source)

    def build_where(self) -> Any:
        if self.link is None:
            return self.where
        return conjoin(self.where, ensure_prefixed(self.link.alias, self.link.base.filter))

    def render(self, formatter: SQLFormatter) -> str:
        return formatter.select(
            source=self.build_source(),
            fields=self.fields or default_fields(self.entity, self.alias),
            where=self.build_where(),
            order=self.order,
            offset=self.offset,
            limit=self.limit,
        )

    def rows(self, rows: list[dict]) -> list:
        return [materialize(self.entity, self.alias, row) for row in rows]
