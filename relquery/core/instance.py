"""Entity instances returned by entity queries."""

import re
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from relquery.core.clause import segments

if TYPE_CHECKING:
    from relquery.core.entity import Entity

_LABEL_SEPARATORS = re.compile(r"[./]")


class Instance(Mapping):
    """A fetched value together with the entity it was fetched through.

    Instances behave as read-only mappings and compare equal to plain dicts
    with the same content.
    """

    def __init__(self, value: Mapping, entity: "Entity"):
        self.value = dict(value)
        self.entity = entity

    def __getitem__(self, key: str) -> Any:
        return self.value[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.value)

    def __len__(self) -> int:
        return len(self.value)

    def __repr__(self) -> str:
        return f"Instance({self.entity.name}, {self.value!r})"

    def persist(self):
        """Build the update writing this instance's own fields back by primary key."""
        pk = self.entity.pk
        own = set(self.entity.fields or self.value)
        values = {key: value for key, value in self.value.items() if key in own and key != pk}
        return self.entity.update(values, {pk: self.value[pk]})

    def remove(self):
        """Build the delete of this instance by primary key."""
        pk = self.entity.pk
        return self.entity.delete({pk: self.value[pk]})


def _nest(target: dict, path: list[str], value: Any) -> None:
    for key in path[:-1]:
        target = target.setdefault(key, {})
    target[path[-1]] = value


def wrap(entity: "Entity", value: dict) -> Instance:
    """Wrap a nested value, turning embedded relation values into Instances."""
    for name in list(value):
        if name in entity.relations and isinstance(value[name], dict):
            value[name] = wrap(entity.related_entity(name), value[name])
    if entity.transform is not None:
        value = entity.transform(value)
    return Instance(value, entity)


def materialize(entity: "Entity", alias: str, row: Mapping) -> Instance:
    """Rebuild a nested Instance from a flat row labelled ``"alias.rel/field"``.

    NULL columns are left out, so a missing left-joined relation does not
    show up at all.
    """
    alias_path = segments(alias)
    value: dict = {}
    for label, column in row.items():
        if column is None:
            continue
        path = _LABEL_SEPARATORS.split(label)
        if len(path) > len(alias_path) and path[: len(alias_path)] == alias_path:
            path = path[len(alias_path) :]
        _nest(value, path, column)
    return wrap(entity, value)
