"""SQL rendering for fields, clauses, sources and orderings.

Rendering is a single left-to-right pass that appends every bound value to
the formatter's parameter list at the moment its ``?`` placeholder is
written, so the parameters always line up with the placeholders.
"""

import re
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from sqlglot import exp

from relquery.core.clause import (
    GROUP_KEYS,
    Aliased,
    Call,
    Field,
    Join,
    Op,
    as_op,
    is_empty,
    local_name,
    namespace_of,
)
from relquery.validation import CompileError

DEFAULT_DIALECT = "duckdb"

# Words that must be quoted when used as column names.
RESERVED_WORDS = frozenset(
    {
        "all",
        "and",
        "any",
        "as",
        "asc",
        "between",
        "by",
        "case",
        "cast",
        "check",
        "column",
        "constraint",
        "create",
        "cross",
        "default",
        "delete",
        "desc",
        "distinct",
        "do",
        "else",
        "end",
        "except",
        "exists",
        "false",
        "fetch",
        "for",
        "foreign",
        "from",
        "full",
        "grant",
        "group",
        "having",
        "in",
        "inner",
        "insert",
        "intersect",
        "into",
        "is",
        "join",
        "key",
        "left",
        "like",
        "limit",
        "natural",
        "not",
        "null",
        "offset",
        "on",
        "or",
        "order",
        "outer",
        "primary",
        "references",
        "right",
        "select",
        "set",
        "table",
        "then",
        "to",
        "true",
        "union",
        "unique",
        "update",
        "user",
        "using",
        "value",
        "values",
        "when",
        "where",
        "with",
    }
)

_PLAIN_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")


@runtime_checkable
class Renderable(Protocol):
    """Anything that renders itself as a SELECT statement (queries)."""

    def render(self, formatter: "SQLFormatter") -> str: ...


def to_db_case(name: str) -> str:
    """Convert a field or table name to the database naming convention."""
    return name.replace("-", "_")


def quote(name: str, dialect: str = DEFAULT_DIALECT) -> str:
    """Quote an identifier for the given dialect."""
    return exp.to_identifier(name, quoted=True).sql(dialect=dialect)


def format_identifier(name: str, dialect: str = DEFAULT_DIALECT) -> str:
    """Render a bare identifier, quoting it only when it has to be."""
    name = to_db_case(name)
    if name == "*" or (_PLAIN_IDENTIFIER.match(name) and name not in RESERVED_WORDS):
        return name
    return quote(name, dialect)


def _predicate_eq(k: str, v: str) -> str:
    if v in ("NULL", "true", "false"):
        return f"{k} IS {v}"
    return f"{k} = {v}"


def _predicate_not_eq(k: str, v: str) -> str:
    if v in ("NULL", "true", "false"):
        return f"{k} IS NOT {v}"
    return f"{k} <> {v}"


def _infix(op: str):
    return lambda k, v: f"{k} {op} {v}"


def _arithmetic(op: str):
    return lambda *args: "(" + f" {op} ".join(args) + ")"


def _membership(op: str):
    return lambda k, *vs: f"{k} {op} (" + ", ".join(vs) + ")"


PREDICATES = {
    Op.EQ: _predicate_eq,
    Op.NOT_EQ: _predicate_not_eq,
    Op.LT: _infix("<"),
    Op.GT: _infix(">"),
    Op.LE: _infix("<="),
    Op.GE: _infix(">="),
    Op.LIKE: _infix("LIKE"),
    Op.ILIKE: _infix("ILIKE"),
    Op.IN: _membership("IN"),
    Op.NOT_IN: _membership("NOT IN"),
    Op.BETWEEN: lambda k, v1, v2: f"{k} BETWEEN {v1} AND {v2}",
    Op.ADD: _arithmetic("+"),
    Op.SUB: _arithmetic("-"),
    Op.MUL: _arithmetic("*"),
    Op.DIV: _arithmetic("/"),
}


# Operators also recognized when spelled as a string at the head of a
# constraint list, with the number of operands they take after the field.
SPELLED_OPERANDS = {
    Op.EQ: 1,
    Op.NOT_EQ: 1,
    Op.LT: 1,
    Op.GT: 1,
    Op.LE: 1,
    Op.GE: 1,
    Op.LIKE: 1,
    Op.ILIKE: 1,
    Op.IN: 1,
    Op.NOT_IN: 1,
    Op.BETWEEN: 2,
}


def constraint_operator(value: Sequence) -> Op | None:
    """Return the operator heading a constraint list, or None for a value list.

    ``Op`` members always count. A string counts only when the list has the
    operator's arity, and for ``in`` / ``not-in`` when the operand is a list,
    so ``["in", "out"]`` stays a list of two values.
    """
    if not value:
        return None
    if isinstance(value[0], Op):
        return value[0]
    op = as_op(value[0])
    if op not in SPELLED_OPERANDS or len(value) != SPELLED_OPERANDS[op] + 1:
        return None
    if op in (Op.IN, Op.NOT_IN) and not isinstance(value[1], (list, tuple)):
        return None
    return op


def _is_group(key: Any, value: Any) -> bool:
    return isinstance(key, str) and key in GROUP_KEYS and isinstance(value, Mapping)


class SQLFormatter:
    """Renders SQL fragments and collects their parameters."""

    def __init__(self, dialect: str = DEFAULT_DIALECT):
        """Initialize formatter.

        Args:
            dialect: SQLGlot dialect name used for identifier quoting
        """
        self.dialect = dialect
        self.params: list = []

    # Identifiers

    def identifier(self, name: str) -> str:
        namespace = namespace_of(name)
        local = format_identifier(local_name(name), self.dialect)
        if namespace:
            return f"{quote(namespace, self.dialect)}.{local}"
        return local

    def target(self, table: str) -> str:
        """Render a table name; ``"schema/table"`` becomes ``schema.table``."""
        return ".".join(format_identifier(part, self.dialect) for part in table.split("/"))

    def label(self, alias: Any) -> str:
        return quote(str(alias), self.dialect)

    # Values and expressions

    def value(self, value: Any) -> str:
        """Render a value, binding it as a parameter unless it is inlined."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, Op):
            raise CompileError(f"Operator {value.value!r} cannot be used as a value")
        if isinstance(value, Field):
            return self.identifier(value.name)
        if isinstance(value, Call):
            return self.call(value)
        if isinstance(value, Aliased):
            return self.field(value)
        if isinstance(value, Renderable):
            return self.subquery(value)
        if isinstance(value, (list, tuple)):
            return "(" + ", ".join(self.value(item) for item in value) + ")"
        if isinstance(value, (Mapping, set, frozenset, Join)):
            raise CompileError(f"Unsupported value: {value!r}")
        self.params.append(value)
        return "?"

    def field(self, field: Any) -> str:
        """Render a projected field or expression."""
        if isinstance(field, str):
            return self.identifier(field)
        if isinstance(field, Aliased):
            rendered = self.field(field.expr)
            if " " in rendered and not rendered.endswith(")"):
                rendered = f"({rendered})"
            return f"{rendered} AS {self.label(field.alias)}"
        if field is None or isinstance(field, (Field, Call, Renderable, bool, int, float, Decimal)):
            return self.value(field)
        raise CompileError(f"Unsupported field: {field!r}")

    def call(self, call: Call) -> str:
        op = call.operator
        if op is None:
            name = to_db_case(str(call.op)).upper()
            return f"{name}(" + ", ".join(self.value(arg) for arg in call.args) + ")"
        return self.operator(op, call.args)

    def operator(self, op: Op, args: Sequence, context: Op | None = None) -> str:
        if op in (Op.AND, Op.OR):
            return self._compound(op, args, context)
        if op is Op.NOT:
            return f"NOT ({self.clause(args[0])})"
        if op is Op.EXISTS:
            return f"EXISTS {self.value(args[0])}"
        if op in (Op.IN, Op.NOT_IN):
            return self._membership(op, args)
        return PREDICATES[op](*(self.value(arg) for arg in args))

    def _membership(self, op: Op, args: Sequence) -> str:
        subject, *candidates = args
        if len(candidates) == 1 and isinstance(candidates[0], (list, tuple)):
            candidates = list(candidates[0])
        if not candidates:
            # Nothing is a member of an empty list
            return "FALSE" if op is Op.IN else "TRUE"
        if len(candidates) == 1 and isinstance(candidates[0], Renderable):
            keyword = "IN" if op is Op.IN else "NOT IN"
            subject_sql = self.value(subject)
            return f"{subject_sql} {keyword} {self.subquery(candidates[0])}"
        return PREDICATES[op](self.value(subject), *(self.value(item) for item in candidates))

    def subquery(self, query: Renderable) -> str:
        return f"({query.render(self)})"

    # Clauses

    def clause(self, clause: Any, context: Op | None = None) -> str:
        """Render a clause; ``context`` is the boolean operator around it."""
        if is_empty(clause):
            return ""
        if isinstance(clause, Mapping):
            return self._mapping(clause, Op.AND, context)
        if isinstance(clause, Call):
            op = clause.operator
            if op in (Op.AND, Op.OR):
                return self._compound(op, clause.args, context)
            return self.call(clause)
        if isinstance(clause, bool):
            return self.value(clause)
        raise CompileError(f"Unsupported clause: {clause!r}")

    def _compound(self, op: Op, parts: Sequence, context: Op | None) -> str:
        return self._join(op, [self.clause(part, op) for part in parts if not is_empty(part)], context)

    def _join(self, op: Op, rendered: list[str], context: Op | None) -> str:
        rendered = [part for part in rendered if part]
        if not rendered:
            return ""
        if len(rendered) == 1:
            return rendered[0]
        text = f" {op.name} ".join(rendered)
        if context is not None and context is not op:
            return f"({text})"
        return text

    def _mapping(self, mapping: Mapping, op: Op, context: Op | None) -> str:
        rendered = []
        for key, value in mapping.items():
            if _is_group(key, value):
                rendered.append(self._mapping(value, GROUP_KEYS[key], op))
            else:
                rendered.append(self._entry(key, value))
        return self._join(op, rendered, context)

    def _entry(self, key: Any, value: Any) -> str:
        subject = Field(key) if isinstance(key, str) else key
        if isinstance(value, (list, tuple)) and not isinstance(value, Aliased):
            op = constraint_operator(value)
            if op is not None:
                return self.operator(op, (subject, *value[1:]))
            return self._membership(Op.IN, (subject, *value))
        if isinstance(value, Mapping):
            raise CompileError(f"Unexpected mapping as the constraint of {key!r}: {value!r}")
        return self.operator(Op.EQ, (subject, value))

    # Sources and orderings

    def source(self, source: Any) -> str:
        if isinstance(source, Join):
            left = self.source(source.left)
            right = self.source(source.right)
            if isinstance(source.right, Join):
                right = f"({right})"
            op = source.op.replace("-", " ").replace("_", " ").upper()
            on = self.clause(source.on)
            return f"{left} {op} {right} ON {on}" if on else f"{left} {op} {right}"
        if isinstance(source, str):
            return self.target(source)
        if isinstance(source, tuple) and len(source) == 2:
            inner, alias = source
            inner_sql = self.target(inner) if isinstance(inner, str) else self.source(inner)
            return f"{inner_sql} AS {self.label(alias)}"
        if isinstance(source, Renderable):
            return self.subquery(source)
        raise CompileError(f"Unsupported source: {source!r}")

    def order(self, order: Any) -> str:
        if isinstance(order, Mapping):
            parts = []
            for key, direction in order.items():
                direction = str(direction).lower()
                if direction not in ("asc", "desc"):
                    raise CompileError(f"Unsupported order direction {direction!r} for {key!r}")
                parts.append(f"{self.field(key)} {direction.upper()}")
            return ", ".join(parts)
        if isinstance(order, (list, tuple)):
            return ", ".join(self.order(item) for item in order)
        return self.field(order)

    # Statements

    def select(self, source=None, fields=None, where=None, order=None, offset=None, limit=None) -> str:
        parts = ["SELECT " + (", ".join(self.field(f) for f in fields) if fields else "*")]
        if source is not None:
            parts.append("FROM " + self.source(source))
        where_sql = self.clause(where)
        if where_sql:
            parts.append("WHERE " + where_sql)
        if order:
            parts.append("ORDER BY " + self.order(order))
        if limit is not None:
            parts.append("LIMIT " + self.value(limit))
        if offset is not None:
            parts.append("OFFSET " + self.value(offset))
        return " ".join(parts)

    def insert(self, target: str, rows: Sequence[Mapping], returning: Sequence[str] = ()) -> str:
        if not rows or not rows[0]:
            raise CompileError(f"Insert into {target!r} requires at least one value")
        columns = list(dict.fromkeys(column for row in rows for column in row))
        values = []
        for row in rows:
            values.append("(" + ", ".join(self.value(row.get(column)) for column in columns) + ")")
        sql = (
            f"INSERT INTO {self.target(target)} ("
            + ", ".join(format_identifier(column, self.dialect) for column in columns)
            + ") VALUES "
            + ", ".join(values)
        )
        if returning:
            sql += " RETURNING " + ", ".join(format_identifier(column, self.dialect) for column in returning)
        return sql

    def update(self, target: str, values: Mapping, where: Any = None) -> str:
        if not values:
            raise CompileError(f"Update of {target!r} requires at least one value")
        assignments = ", ".join(f"{format_identifier(column, self.dialect)} = {self.value(value)}" for column, value in values.items())
        sql = f"UPDATE {self.target(target)} SET {assignments}"
        where_sql = self.clause(where)
        return f"{sql} WHERE {where_sql}" if where_sql else sql

    def delete(self, target: str, where: Any = None) -> str:
        sql = f"DELETE FROM {self.target(target)}"
        where_sql = self.clause(where)
        return f"{sql} WHERE {where_sql}" if where_sql else sql


def format_field(field: Any, alias: str | None = None, dialect: str = DEFAULT_DIALECT) -> str:
    """Render a field, optionally aliased.

    Example:
        >>> format_field("user/id", "id")
        '"user".id AS "id"'
    """
    formatter = SQLFormatter(dialect)
    return formatter.field(Aliased(field, alias) if alias is not None else field)


def format_clause(clause: Any, dialect: str = DEFAULT_DIALECT) -> str:
    """Render a clause to SQL text."""
    return SQLFormatter(dialect).clause(clause)


def compile_clause(clause: Any, dialect: str = DEFAULT_DIALECT) -> tuple[str, list]:
    """Render a clause and return its text with its parameters."""
    formatter = SQLFormatter(dialect)
    return formatter.clause(clause), formatter.params


def format_source(source: Any, dialect: str = DEFAULT_DIALECT) -> str:
    """Render a table, aliased table, sub-query or join tree."""
    return SQLFormatter(dialect).source(source)


def format_order(order: Any, dialect: str = DEFAULT_DIALECT) -> str:
    """Render an ordering: a field, a list of fields or a field-to-direction mapping."""
    return SQLFormatter(dialect).order(order)


def extract_values(tree: Any, dialect: str = DEFAULT_DIALECT) -> list:
    """Return the parameters bound when ``tree`` is rendered, in placeholder order.

    Accepts a clause, a list of fields, a source (join tree) or a query.
    """
    formatter = SQLFormatter(dialect)
    if isinstance(tree, Renderable):
        tree.render(formatter)
    elif isinstance(tree, Join):
        formatter.source(tree)
    elif isinstance(tree, (Mapping, Call)):
        formatter.clause(tree)
    elif isinstance(tree, list) or (isinstance(tree, tuple) and not isinstance(tree, Aliased)):
        for field in tree:
            formatter.field(field)
    elif tree is not None:
        formatter.field(tree)
    return formatter.params
