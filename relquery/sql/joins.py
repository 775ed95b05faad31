"""Join inference for entity queries.

An entity query joins the relations it needs: eager belongs_to / has_one
relations always, and any relation whose alias (``"user.person"``) is
referenced by the query's clause, ordering or projection. Related entities
are joined left-deep, with their own filter and the relation filter in the
ON condition.
"""

from typing import TYPE_CHECKING, Any

from relquery.core.clause import (
    SEGMENT_SEPARATOR,
    Aliased,
    Field,
    Join,
    conjoin,
    ensure_prefixed,
    namespaces,
    prefix,
    segments,
)
from relquery.core.relation import BelongsTo, HasMany
from relquery.validation import QueryShapeError

if TYPE_CHECKING:
    from relquery.core.entity import Entity


def relation_alias(alias: str, name: str) -> str:
    return f"{alias}{SEGMENT_SEPARATOR}{name}"


def join_condition(entity: "Entity", alias: str, relation: Any, related: "Entity", related_alias: str) -> dict:
    """ON condition linking ``entity`` (as ``alias``) to a related entity."""
    if isinstance(relation, BelongsTo):
        return {prefix(alias, relation.fk): Field(prefix(related_alias, related.pk))}
    return {prefix(alias, entity.pk): Field(prefix(related_alias, relation.fk))}


def _referenced(refs: set[str], alias: str) -> bool:
    return any(ref == alias or ref.startswith(alias + SEGMENT_SEPARATOR) for ref in refs)


def _check_references(entity: "Entity", alias: str, refs: set[str]) -> None:
    depth = len(segments(alias))
    for ref in refs:
        parts = segments(ref)
        if len(parts) > depth and parts[:depth] == segments(alias) and parts[depth] not in entity.relations:
            entity.relation(parts[depth])


def build_source(
    entity: "Entity",
    alias: str,
    refs: set[str],
    path: tuple = (),
    source: Any = None,
) -> Any:
    """Build the FROM source of ``entity`` with every relation it needs joined.

    Args:
        entity: Entity to start from
        alias: Alias of the entity in the query
        refs: Namespaces referenced by the query; grows with the namespaces
            of joined entities' filters
        path: Names of the entities already joined on the way here
        source: Source to extend instead of the entity's own table

    Raises:
        QueryShapeError: If a has_many or an undeclared relation is referenced
    """
    path = path + (entity.name,)
    if source is None:
        source = (entity.table, alias)
    _check_references(entity, alias, refs)

    for name, relation in entity.relations.items():
        rel_alias = relation_alias(alias, name)
        referenced = _referenced(refs, rel_alias)
        eager = relation.eager and relation.entity not in path
        if not (referenced or eager):
            continue
        if isinstance(relation, HasMany):
            raise QueryShapeError(
                f"Relation '{name}' of entity '{entity.name}' is has_many and cannot be joined into a query "
                f"over '{entity.name}'; only belongs_to and has_one relations support this. "
                f"Use find_related('{name}') instead"
            )
        related = entity.related_entity(name)
        related_filter = conjoin(
            ensure_prefixed(rel_alias, related.filter),
            ensure_prefixed(rel_alias, relation.filter),
        )
        refs.update(namespaces(related_filter))
        on = conjoin(join_condition(entity, alias, relation, related, rel_alias), related_filter)
        source = Join(source, "left-join", (related.table, rel_alias), on)
        source = build_source(related, rel_alias, refs, path, source)

    return source


def default_fields(entity: "Entity", alias: str, path: tuple = ()) -> list:
    """Own fields of ``entity`` plus those of its eager relations, labelled by namespaced name."""
    path = path + (entity.name,)
    if entity.fields:
        fields = [Aliased(prefix(alias, name), prefix(alias, name)) for name in entity.fields]
    else:
        fields = [prefix(alias, "*")]

    for name, relation in entity.relations.items():
        if relation.eager and relation.entity not in path:
            related = entity.related_entity(name)
            fields.extend(default_fields(related, relation_alias(alias, name), path))
    return fields
