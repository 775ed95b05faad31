"""Composable SELECT queries."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

import sqlglot

from relquery.core.clause import Aliased, Call, Field, Join, conjoin
from relquery.sql.format import DEFAULT_DIALECT, SQLFormatter
from relquery.validation import TransactionError

logger = logging.getLogger(__name__)


def normalize_fields(fields: Any) -> tuple:
    """Turn a projection into a tuple of fields.

    A single field becomes a one-element tuple; ``(expr, alias)`` pairs inside
    a projection list become ``Aliased`` entries.
    """
    if fields is None:
        return ()
    if isinstance(fields, (str, Field, Call, Aliased)):
        return (fields,)
    normalized = []
    for item in fields:
        if isinstance(item, tuple) and not isinstance(item, Aliased) and len(item) == 2:
            item = Aliased(*item)
        normalized.append(item)
    return tuple(normalized)


def resolve_adapter(*candidates):
    """Return the first adapter given, or raise if there is none."""
    for adapter in candidates:
        if adapter is not None:
            return adapter
    raise TransactionError("No database adapter available to execute against")


@dataclass(frozen=True)
class Query:
    """An immutable SELECT statement.

    Every builder method returns a new Query; nothing is executed until
    ``fetch`` (or ``execute``) is called.

    Example:
        >>> q = select("users", ["id", "name"]).restrict({"id": 1})
        >>> q.compile()
        ('SELECT id, name FROM users WHERE id = ?', [1])
    """

    source: Any = None
    fields: tuple = ()
    where: Any = None
    order: Any = None
    offset: int | None = None
    limit: int | None = None
    adapter: Any = field(default=None, compare=False, repr=False)
    dialect: str | None = None

    def restrict(self, clause: Any, exact: bool = False) -> "Query":
        """Add a restriction (AND) or, with ``exact``, replace the current one."""
        return replace(self, where=clause if exact else conjoin(self.where, clause))

    def order_by(self, order: Any) -> "Query":
        return replace(self, order=order)

    def skip(self, offset: int | None) -> "Query":
        return replace(self, offset=offset)

    def take(self, limit: int | None) -> "Query":
        return replace(self, limit=limit)

    def project(self, fields: Any) -> "Query":
        return replace(self, fields=normalize_fields(fields))

    def join(self, op: str, source: Any, on: Any = None) -> "Query":
        """Join another source to this query's source."""
        return replace(self, source=Join(self.source, op, source, on))

    def with_adapter(self, adapter: Any) -> "Query":
        return replace(self, adapter=adapter)

    def render(self, formatter: SQLFormatter) -> str:
        return formatter.select(
            source=self.source,
            fields=self.fields,
            where=self.where,
            order=self.order,
            offset=self.offset,
            limit=self.limit,
        )

    def resolve_dialect(self, dialect: str | None = None) -> str:
        if dialect:
            return dialect
        if self.dialect:
            return self.dialect
        if self.adapter is not None:
            return self.adapter.dialect
        return DEFAULT_DIALECT

    def compile(self, dialect: str | None = None) -> tuple[str, list]:
        """Render the query to SQL text and its parameter list."""
        formatter = SQLFormatter(self.resolve_dialect(dialect))
        sql = self.render(formatter)
        return sql, formatter.params

    def pretty(self, dialect: str | None = None) -> str:
        """Render the query formatted over multiple lines."""
        dialect = self.resolve_dialect(dialect)
        sql, _ = self.compile(dialect)
        return sqlglot.transpile(sql, read=dialect, write=dialect, pretty=True)[0]

    def __str__(self) -> str:
        return self.compile()[0]

    def rows(self, rows: list[dict]) -> list:
        """Convert fetched rows into results."""
        return rows

    def fetch(self, fields: Any = None, adapter: Any = None) -> list:
        """Execute the query and return its rows.

        Args:
            fields: Projection to use instead of the query's own
            adapter: Adapter to run against instead of the query's own
        """
        query = self.project(fields) if fields is not None else self
        adapter = resolve_adapter(adapter, self.adapter)
        sql, params = query.compile(adapter.dialect)
        return query.rows(adapter.fetch_all(sql, params))

    def fetch_count(self, adapter: Any = None) -> int:
        """Count the rows matched by the query, ignoring order and paging."""
        query = replace(
            self,
            fields=(Aliased(Call("count", (Field("*"),)), "count"),),
            order=None,
            offset=None,
            limit=None,
        )
        adapter = resolve_adapter(adapter, self.adapter)
        sql, params = query.compile(adapter.dialect)
        rows = adapter.fetch_all(sql, params)
        return rows[0]["count"] if rows else 0

    def execute(self, adapter: Any = None) -> list:
        return self.fetch(adapter=adapter)


def select(
    source: Any = None,
    fields: Any = None,
    where: Any = None,
    order: Any = None,
    offset: int | None = None,
    limit: int | None = None,
    adapter: Any = None,
) -> Query:
    """Build a Query.

    Args:
        source: Table name, ``(table_or_query, alias)`` pair or Join tree
        fields: Projection (defaults to ``*``)
        where: Clause mapping or Call
        order: Field, list of fields or mapping of field to "asc"/"desc"
        offset: Number of rows to skip
        limit: Maximum number of rows
        adapter: Adapter the query executes through
    """
    if isinstance(where, Mapping) and not where:
        where = None
    return Query(
        source=source,
        fields=normalize_fields(fields),
        where=where,
        order=order,
        offset=offset,
        limit=limit,
        adapter=adapter,
    )
