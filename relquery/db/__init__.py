"""Database adapter abstraction layer."""

from relquery.db.base import BaseDatabaseAdapter

__all__ = ["BaseDatabaseAdapter", "connect"]


def connect(url: str) -> BaseDatabaseAdapter:
    """Open an adapter for a connection URL, chosen by its scheme.

    Args:
        url: Connection URL such as "duckdb:///app.db" or "sqlite:///:memory:"

    Raises:
        ValueError: If the scheme is not supported
    """
    if url.startswith("duckdb://"):
        from relquery.db.duckdb import DuckDBAdapter

        return DuckDBAdapter.from_url(url)
    if url.startswith("sqlite://"):
        from relquery.db.sqlite import SQLiteAdapter

        return SQLiteAdapter.from_url(url)
    scheme = url.split("://", 1)[0]
    raise ValueError(f"Unsupported database URL scheme '{scheme}'. Supported: duckdb, sqlite")


def __getattr__(name):
    """Lazy import database adapters to avoid importing optional dependencies."""
    if name == "DuckDBAdapter":
        from relquery.db.duckdb import DuckDBAdapter

        return DuckDBAdapter
    if name == "SQLiteAdapter":
        from relquery.db.sqlite import SQLiteAdapter

        return SQLiteAdapter
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
