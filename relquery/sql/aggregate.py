"""Planning of writes that span an entity and its relations.

Creating an aggregate orders the inserts by dependency: rows the new row
points at (belongs_to) first, then the row itself, then the rows pointing at
it (has_one / has_many) and finally the link rows of join-table relations.
Keys generated by earlier inserts reach later ones through deferred steps,
which receive the results of the steps before them.
"""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from relquery.core.clause import conjoin, ensure_prefixed, namespaces, strip_prefix
from relquery.core.relation import BelongsTo, HasMany
from relquery.sql.command import Delete, Insert, Update
from relquery.sql.transaction import Step, Transaction
from relquery.validation import QueryShapeError

if TYPE_CHECKING:
    from relquery.core.entity import Entity

logger = logging.getLogger(__name__)


def partition(entity: "Entity", data: Mapping) -> tuple[dict, dict]:
    """Split a payload into column values and embedded relation payloads."""
    columns, embeds = {}, {}
    for key, value in data.items():
        if key not in entity.relations:
            columns[key] = value
        elif isinstance(value, (Mapping, list, tuple)):
            embeds[key] = value
        else:
            raise QueryShapeError(
                f"Embedded relation '{key}' of entity '{entity.name}' must be a mapping or a list of mappings"
            )
    return columns, embeds


def _items(payload: Any) -> list:
    return [payload] if isinstance(payload, Mapping) else list(payload)


def _key(results: list, index: int, column: str) -> Any:
    return results[index][column]


# Create


def plan_create(entity: "Entity", data: Mapping):
    """Plan the creation of ``data`` with its embedded relations.

    Returns a plain Insert when nothing is embedded, otherwise a Transaction
    whose visible result is the key mapping of the new row.
    """
    if entity.prepare is not None:
        data = entity.prepare(data)
    columns, embeds = partition(entity, data)
    if not embeds:
        return Insert(entity.table, values=columns, returning=(entity.pk,), adapter=entity.adapter)

    steps: list[Step] = []
    dependencies: dict[str, tuple[int, str]] = {}
    for name, payload in embeds.items():
        relation = entity.relation(name)
        if not isinstance(relation, BelongsTo):
            continue
        related = entity.related_entity(name)
        if not isinstance(payload, Mapping):
            raise QueryShapeError(f"Embedded belongs_to relation '{name}' of entity '{entity.name}' must be a mapping")
        if set(payload) == {related.pk}:
            columns[relation.fk] = payload[related.pk]
            continue
        dependencies[relation.fk] = (len(steps), related.pk)
        steps.append(Step(plan_create(related, payload)))

    root_index = len(steps)
    steps.append(Step(_root_insert(entity, columns, dependencies), result=True))
    root_key = columns.get(entity.pk)

    cross = []
    for name, payload in embeds.items():
        relation = entity.relation(name)
        if isinstance(relation, BelongsTo):
            continue
        if relation.join_table:
            cross.append((name, relation, payload))
            continue
        related = entity.related_entity(name)
        for item in _items(payload):
            steps.append(Step(_dependent(entity, related, relation, item, root_index, root_key)))

    for name, relation, payload in cross:
        related = entity.related_entity(name)
        for item in _items(payload):
            if related.pk in item:
                related_key = item[related.pk]
                related_index = None
            else:
                related_key = None
                related_index = len(steps)
                steps.append(Step(plan_create(related, item)))
            steps.append(
                Step(_link_insert(entity, related, relation, root_index, root_key, related_index, related_key))
            )

    logger.debug(f"Planned creation of '{entity.name}' in {len(steps)} steps")
    return Transaction(steps=tuple(steps), adapter=entity.adapter)


def _root_insert(entity: "Entity", columns: dict, dependencies: dict):
    def build(results: list) -> Insert:
        values = dict(columns)
        for fk, (index, pk) in dependencies.items():
            values[fk] = _key(results, index, pk)
        return Insert(entity.table, values=values, returning=(entity.pk,))

    return build


def _dependent(entity: "Entity", related: "Entity", relation: Any, item: Mapping, root_index: int, root_key: Any):
    if root_key is not None:
        return plan_create(related, {**item, relation.fk: root_key})

    def build(results: list):
        return plan_create(related, {**item, relation.fk: _key(results, root_index, entity.pk)})

    return build


def _link_insert(
    entity: "Entity",
    related: "Entity",
    relation: HasMany,
    root_index: int,
    root_key: Any,
    related_index: int | None,
    related_key: Any,
):
    def build(results: list) -> Insert:
        own = root_key if root_key is not None else _key(results, root_index, entity.pk)
        other = related_key if related_index is None else _key(results, related_index, related.pk)
        return Insert(
            relation.join_table,
            values={relation.fk: own, relation.rfk: other},
            returning=(relation.fk, relation.rfk),
        )

    return build


# Update and delete


def _mutation_clause(entity: "Entity", where: Any) -> tuple[Any, bool]:
    clause = conjoin(ensure_prefixed(entity.name, entity.filter), ensure_prefixed(entity.name, where))
    related = any(namespace != entity.name for namespace in namespaces(clause))
    return clause, related


def _affected_rows(results: list) -> int:
    return sum(result if isinstance(result, int) else 1 for result in results)


def plan_update(entity: "Entity", patch: Mapping, where: Any = None):
    """Plan an update of the rows matched by ``where``.

    Returns a plain Update unless the clause refers to related entities or
    the patch embeds relation payloads. Then the primary keys of the matched
    rows are selected first and every mutation is restricted to them; the
    visible result is the total number of affected rows.

    A mapping embedded for a relation updates the related rows of the matched
    rows. A list embedded for a has_many relation creates every item once for
    each matched row, counting one affected row per item.
    """
    columns, embeds = partition(entity, patch)
    clause, refers_related = _mutation_clause(entity, where)
    if not embeds and not refers_related:
        return Update(entity.table, values=columns, where=strip_prefix(entity.name, clause), adapter=entity.adapter)

    key_fields = [entity.pk]
    for name, payload in embeds.items():
        relation = entity.relation(name)
        if getattr(relation, "join_table", None):
            raise QueryShapeError(
                f"Cannot update embedded relation '{name}' of entity '{entity.name}' through its join table; "
                f"update '{relation.entity}' directly"
            )
        if not isinstance(payload, Mapping) and not isinstance(relation, HasMany):
            raise QueryShapeError(f"Embedded relation '{name}' of entity '{entity.name}' must be a mapping to update")
        if isinstance(relation, BelongsTo):
            key_fields.append(relation.fk)

    def mutate(results: list) -> Transaction:
        rows = results[0]
        ids = [row[entity.pk] for row in rows]
        steps = []
        if ids and columns:
            steps.append(Update(entity.table, values=columns, where={entity.pk: ids}))
        for name, payload in embeds.items():
            relation = entity.relation(name)
            related = entity.related_entity(name)
            if isinstance(relation, BelongsTo):
                keys = [row[relation.fk] for row in rows if row.get(relation.fk) is not None]
                if keys:
                    steps.append(plan_update(related, payload, {related.pk: keys}))
            elif not isinstance(payload, Mapping):
                for root_id in ids:
                    steps.extend(plan_create(related, {**item, relation.fk: root_id}) for item in payload)
            elif ids:
                steps.append(plan_update(related, payload, {relation.fk: ids}))
        return Transaction(steps=tuple(steps), combine=_affected_rows)

    pre_select = entity.find(where, fields=key_fields)
    return Transaction(steps=(Step(pre_select), Step(mutate, result=True)), adapter=entity.adapter)


def plan_delete(entity: "Entity", where: Any = None):
    """Plan a delete of the rows matched by ``where``; executes to the row count."""
    clause, refers_related = _mutation_clause(entity, where)
    if not refers_related:
        return Delete(entity.table, where=strip_prefix(entity.name, clause), adapter=entity.adapter)

    def remove(results: list) -> Delete:
        return Delete(entity.table, where={entity.pk: [row[entity.pk] for row in results[0]]})

    pre_select = entity.find(where, fields=[entity.pk])
    return Transaction(steps=(Step(pre_select), Step(remove, result=True)), adapter=entity.adapter)


# Linking


def plan_link(entity: "Entity", id: Any, name: str, rel_id: Any):
    """Plan linking entity ``id`` to related entity ``rel_id`` through relation ``name``."""
    relation = entity.relation(name)
    related = entity.related_entity(name)
    if isinstance(relation, BelongsTo):
        return Update(entity.table, values={relation.fk: rel_id}, where={entity.pk: id}, adapter=entity.adapter)
    if relation.join_table:
        return Insert(
            relation.join_table,
            values={relation.fk: id, relation.rfk: rel_id},
            returning=(relation.fk, relation.rfk),
            adapter=entity.adapter,
        )
    return Update(related.table, values={relation.fk: id}, where={related.pk: rel_id}, adapter=entity.adapter)


def plan_unlink(entity: "Entity", id: Any, name: str, rel_id: Any):
    """Plan unlinking entity ``id`` from related entity ``rel_id``."""
    relation = entity.relation(name)
    related = entity.related_entity(name)
    if isinstance(relation, BelongsTo):
        return Update(
            entity.table,
            values={relation.fk: None},
            where={entity.pk: id, relation.fk: rel_id},
            adapter=entity.adapter,
        )
    if relation.join_table:
        return Delete(relation.join_table, where={relation.fk: id, relation.rfk: rel_id}, adapter=entity.adapter)
    return Update(
        related.table,
        values={relation.fk: None},
        where={related.pk: rel_id, relation.fk: id},
        adapter=entity.adapter,
    )
