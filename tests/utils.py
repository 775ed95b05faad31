"""Shared test helpers."""

from sqlglot import exp, parse_one


def scalar(adapter, sql, params=None):
    """Fetch the single value of a one-row, one-column query."""
    return adapter.execute(sql, params).fetchone()[0]


def placeholder_count(sql: str, dialect: str = "duckdb") -> int:
    """Count the ``?`` placeholders sqlglot finds when parsing ``sql``."""
    return len(list(parse_one(sql, read=dialect).find_all(exp.Placeholder)))
