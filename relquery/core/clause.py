"""Clause and predicate language.

Filters, projections and orderings are plain data so that the entity engine
can inspect, qualify, split and merge them before anything is rendered.

Field names carry their namespace before a slash: ``"employee.person/name"``
is the ``name`` field in the ``employee.person`` namespace. Namespaces are
join aliases, with one segment per relation hop.

In a clause mapping the keys are fields and the values are constraints::

    {"id": 1}                              # id = ?
    {"name": ["John", "Jane"]}             # name IN (?, ?)
    {"login": [Op.ILIKE, "a%"]}            # login ILIKE ?
    {"age": [">=", 18]}                    # age >= ?  (operators may be spelled)
    {"deleted_at": None}                   # deleted_at IS NULL
    {"or": {"role": "admin", "id": 1}}     # (role = ? OR id = ?)

Strings are fields wherever a field is expected (mapping keys, projection
lists, orderings) and values everywhere else. Use ``F("name")`` to refer to a
field from a value position.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple

from relquery.validation import QueryShapeError

NAMESPACE_SEPARATOR = "/"
SEGMENT_SEPARATOR = "."


class Op(str, Enum):
    """Recognized operators."""

    EQ = "="
    NOT_EQ = "not="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    IN = "in"
    NOT_IN = "not-in"
    LIKE = "like"
    ILIKE = "ilike"
    BETWEEN = "between"
    EXISTS = "exists"
    AND = "and"
    OR = "or"
    NOT = "not"
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"

    def __str__(self) -> str:
        return self.value


GROUP_KEYS = {"and": Op.AND, "or": Op.OR}


def as_op(value: Any) -> Op | None:
    """Return the recognized operator for ``value``, or None."""
    if isinstance(value, Op):
        return value
    if isinstance(value, str):
        try:
            return Op(value)
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class Field:
    """A reference to a column, optionally namespaced by a join alias."""

    name: str

    @property
    def namespace(self) -> str | None:
        return namespace_of(self.name)

    @property
    def local(self) -> str:
        return local_name(self.name)

    def __str__(self) -> str:
        return self.name


F = Field


@dataclass(frozen=True)
class Call:
    """Application of an operator or a database function to arguments.

    Arguments are in value position: strings are bound as parameters and
    fields must be given as ``Field`` objects.
    """

    op: str
    args: tuple = ()

    @property
    def operator(self) -> Op | None:
        return as_op(self.op)


class Aliased(NamedTuple):
    """A projected expression with an output label."""

    expr: Any
    alias: str


@dataclass(frozen=True)
class Join:
    """Two sources linked by a join operation (``"left-join"``, ``"join"``, ...).

    Either side may itself be a Join, so arbitrarily deep join trees can be
    described.
    """

    left: Any
    op: str
    right: Any
    on: Any = None


def fn(op: str, *args) -> Call:
    """Build a function or operator call.

    Example:
        >>> fn("count", F("id"))
        >>> fn(Op.GT, F("salary"), 1000)
    """
    return Call(op, tuple(args))


def and_(*clauses) -> Call:
    return Call(Op.AND, tuple(clauses))


def or_(*clauses) -> Call:
    return Call(Op.OR, tuple(clauses))


def not_(clause) -> Call:
    return Call(Op.NOT, (clause,))


def is_empty(clause: Any) -> bool:
    """Check whether a clause imposes no restriction."""
    if clause is None:
        return True
    if isinstance(clause, Mapping):
        return len(clause) == 0
    return False


def conjoin(*clauses):
    """Combine clauses with AND, skipping empty ones.

    Returns None when nothing remains and the clause itself when only one does.
    """
    result = None
    for clause in clauses:
        if is_empty(clause):
            continue
        result = clause if result is None else Call(Op.AND, (result, clause))
    return result


# Field names


def _name(field: "str | Field") -> str:
    return field.name if isinstance(field, Field) else field


def namespace_of(field: "str | Field") -> str | None:
    """Get the namespace of a field name (``"a.b/c"`` -> ``"a.b"``)."""
    namespace, separator, _ = _name(field).rpartition(NAMESPACE_SEPARATOR)
    return namespace if separator else None


def local_name(field: "str | Field") -> str:
    """Get the field name without its namespace (``"a.b/c"`` -> ``"c"``)."""
    return _name(field).rpartition(NAMESPACE_SEPARATOR)[2]


def namespace_path(namespace: "str | Field") -> str:
    """Flatten a namespaced name into a namespace (``"a/b"`` -> ``"a.b"``)."""
    parent = namespace_of(namespace)
    local = local_name(namespace)
    return f"{parent}{SEGMENT_SEPARATOR}{local}" if parent else local


def segments(namespace: str | None) -> list[str]:
    return namespace.split(SEGMENT_SEPARATOR) if namespace else []


def prefix(namespace: "str | Field", field: "str | Field") -> "str | Field":
    """Prefix ``field`` with ``namespace``.

    Example:
        >>> prefix("user", "id")
        'user/id'
        >>> prefix("employee/supervisor", "person/id")
        'employee.supervisor.person/id'
    """
    path = namespace_path(namespace)
    inner = namespace_of(field)
    if inner:
        path = f"{path}{SEGMENT_SEPARATOR}{inner}"
    result = f"{path}{NAMESPACE_SEPARATOR}{local_name(field)}"
    return Field(result) if isinstance(field, Field) else result


def prefixed(namespace: "str | Field", field: "str | Field") -> bool:
    """Check whether ``field`` lives in ``namespace`` or below it."""
    expected = segments(namespace_path(namespace))
    actual = segments(namespace_of(field))
    return actual[: len(expected)] == expected


# Tree rewriting


def _is_group(key: Any, value: Any) -> bool:
    return isinstance(key, str) and key in GROUP_KEYS and isinstance(value, Mapping)


def map_fields(tree: Any, func: Callable[[str], str]) -> Any:
    """Rewrite every field name in a clause, projection or ordering.

    ``func`` receives field names and returns their replacements. Operators,
    values and sub-queries are left untouched.
    """
    return _map_field_position(tree, func)


def _map_field_position(node: Any, func: Callable[[str], str]) -> Any:
    if node is None or isinstance(node, Op):
        return node
    if isinstance(node, str):
        return func(node)
    if isinstance(node, Field):
        return Field(func(node.name))
    if isinstance(node, Aliased):
        return Aliased(_map_field_position(node.expr, func), node.alias)
    if isinstance(node, Call):
        return Call(node.op, tuple(_map_value_position(arg, func) for arg in node.args))
    if isinstance(node, Mapping):
        return _map_clause(node, func)
    if isinstance(node, (list, tuple)):
        return type(node)(_map_field_position(item, func) for item in node)
    return node


def _map_value_position(node: Any, func: Callable[[str], str]) -> Any:
    if isinstance(node, Field):
        return Field(func(node.name))
    if isinstance(node, Call):
        return Call(node.op, tuple(_map_value_position(arg, func) for arg in node.args))
    if isinstance(node, Mapping):
        return _map_clause(node, func)
    if isinstance(node, Aliased):
        return Aliased(_map_value_position(node.expr, func), node.alias)
    if isinstance(node, (list, tuple)):
        return type(node)(_map_value_position(item, func) for item in node)
    return node


def _map_clause(clause: Mapping, func: Callable[[str], str]) -> dict:
    result = {}
    for key, value in clause.items():
        if _is_group(key, value):
            result[key] = _map_clause(value, func)
        else:
            mapped = _map_field_position(key, func)
            result[mapped] = _map_value_position(value, func)
    return result


def field_names(tree: Any) -> list[str]:
    """List the field names referenced in a tree, in traversal order."""
    found = []

    def record(name: str) -> str:
        found.append(name)
        return name

    map_fields(tree, record)
    return found


def namespaces(tree: Any) -> set[str]:
    """Collect the namespaces referenced by fields of a tree."""
    return {ns for ns in (namespace_of(name) for name in field_names(tree)) if ns}


def ensure_prefixed(namespace: "str | Field", tree: Any) -> Any:
    """Qualify every field of ``tree`` that is not already in ``namespace``.

    Example:
        >>> ensure_prefixed("user", {"id": 1, "person/name": "Jane"})
        {'user/id': 1, 'user.person/name': 'Jane'}
    """

    def qualify(name: str) -> str:
        if name == "*" or prefixed(namespace, name):
            return name
        return prefix(namespace, name)

    return map_fields(tree, qualify)


def strip_prefix(namespace: "str | Field", tree: Any) -> Any:
    """Remove ``namespace`` from fields that live directly in it."""
    path = namespace_path(namespace)

    def strip(name: str) -> str:
        return local_name(name) if namespace_of(name) == path else name

    return map_fields(tree, strip)


def split_clause(clause: Any, matches: Callable[[str], bool]) -> tuple[Any, Any]:
    """Split a conjunctive clause by the fields it references.

    Returns ``(matching, rest)``: the conjuncts whose fields all satisfy
    ``matches`` and the conjuncts whose fields satisfy it for none.

    Raises:
        QueryShapeError: If a single conjunct references fields of both kinds
    """
    if is_empty(clause):
        return None, None

    if isinstance(clause, Call) and clause.operator is Op.AND:
        parts = [split_clause(arg, matches) for arg in clause.args]
        return conjoin(*(part[0] for part in parts)), conjoin(*(part[1] for part in parts))

    if isinstance(clause, Mapping):
        matching, rest = {}, {}
        for key, value in clause.items():
            if _is_group(key, value) and key == "and":
                inner_matching, inner_rest = split_clause(value, matches)
                if inner_matching:
                    matching[key] = inner_matching
                if inner_rest:
                    rest[key] = inner_rest
                continue
            target = matching if _side({key: value}, matches) else rest
            target[key] = value
        return matching or None, rest or None

    return (clause, None) if _side(clause, matches) else (None, clause)


def _side(node: Any, matches: Callable[[str], bool]) -> bool:
    flags = {matches(name) for name in field_names(node) if name != "*"}
    if len(flags) > 1:
        raise QueryShapeError(f"Cannot split clause {node!r}: it mixes fields of the related and the base entity")
    return flags == {True}
