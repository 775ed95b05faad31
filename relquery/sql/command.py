"""INSERT, UPDATE and DELETE commands."""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from relquery.sql.format import DEFAULT_DIALECT, SQLFormatter
from relquery.sql.query import resolve_adapter


@dataclass(frozen=True)
class Command:
    """Base class for data-changing statements."""

    target: str
    adapter: Any = field(default=None, compare=False, repr=False, kw_only=True)
    dialect: str | None = field(default=None, kw_only=True)

    def to_sql(self, formatter: SQLFormatter) -> str:
        raise NotImplementedError

    def resolve_dialect(self, dialect: str | None = None) -> str:
        if dialect:
            return dialect
        if self.dialect:
            return self.dialect
        if self.adapter is not None:
            return self.adapter.dialect
        return DEFAULT_DIALECT

    def compile(self, dialect: str | None = None) -> tuple[str, list]:
        formatter = SQLFormatter(self.resolve_dialect(dialect))
        sql = self.to_sql(formatter)
        return sql, formatter.params

    def with_adapter(self, adapter: Any) -> "Command":
        return replace(self, adapter=adapter)

    def __str__(self) -> str:
        return self.compile()[0]

    def execute(self, adapter: Any = None) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Insert(Command):
    """Insert one row (a mapping) or a batch of rows (a list of mappings).

    Executes to the mapping of ``returning`` columns of the inserted row, or to
    a list of such mappings for a batch.
    """

    values: Any = None
    returning: tuple = ()

    @property
    def batch(self) -> bool:
        return not isinstance(self.values, Mapping)

    @property
    def rows(self) -> list[Mapping]:
        return [self.values] if not self.batch else list(self.values)

    def to_sql(self, formatter: SQLFormatter, returning: bool = True) -> str:
        return formatter.insert(self.target, self.rows, self.returning if returning else ())

    def execute(self, adapter: Any = None) -> dict | list[dict]:
        adapter = resolve_adapter(adapter, self.adapter)
        formatter = SQLFormatter(adapter.dialect)
        if self.returning and adapter.supports_returning:
            returned = adapter.execute_insert(self.to_sql(formatter), formatter.params)
        else:
            adapter.execute_update(self.to_sql(formatter, returning=False), formatter.params)
            # Without RETURNING the best we know are the submitted key values
            returned = [{column: row.get(column) for column in self.returning} for row in self.rows]
        if self.batch:
            return returned
        return returned[0] if returned else {}


@dataclass(frozen=True)
class Update(Command):
    """Update rows matching ``where``; executes to the affected-row count."""

    values: Mapping = field(default_factory=dict)
    where: Any = None

    def to_sql(self, formatter: SQLFormatter) -> str:
        return formatter.update(self.target, self.values, self.where)

    def execute(self, adapter: Any = None) -> int:
        adapter = resolve_adapter(adapter, self.adapter)
        sql, params = self.compile(adapter.dialect)
        return adapter.execute_update(sql, params)


@dataclass(frozen=True)
class Delete(Command):
    """Delete rows matching ``where``; executes to the affected-row count."""

    where: Any = None

    def to_sql(self, formatter: SQLFormatter) -> str:
        return formatter.delete(self.target, self.where)

    def execute(self, adapter: Any = None) -> int:
        adapter = resolve_adapter(adapter, self.adapter)
        sql, params = self.compile(adapter.dialect)
        return adapter.execute_update(sql, params)


def insert(target: str, values: Any, returning: Any = (), adapter: Any = None) -> Insert:
    """Build an Insert of one mapping or a list of mappings."""
    if isinstance(returning, str):
        returning = (returning,)
    return Insert(target, values=values, returning=tuple(returning), adapter=adapter)


def update(target: str, values: Mapping, where: Any = None, adapter: Any = None) -> Update:
    return Update(target, values=values, where=where, adapter=adapter)


def delete(target: str, where: Any = None, adapter: Any = None) -> Delete:
    return Delete(target, where=where, adapter=adapter)
