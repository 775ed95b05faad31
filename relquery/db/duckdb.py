"""DuckDB database adapter."""

import logging
from typing import Any

import duckdb

from relquery.db.base import BaseDatabaseAdapter

logger = logging.getLogger(__name__)


class DuckDBAdapter(BaseDatabaseAdapter):
    """DuckDB database adapter.

    Wraps DuckDB connection to provide unified adapter interface.
    """

    def __init__(self, path: str = ":memory:"):
        """Initialize DuckDB adapter.

        Args:
            path: Database file path or ":memory:" for in-memory database
        """
        self.conn = duckdb.connect(path)

    def execute(self, sql: str, params: list | None = None) -> Any:
        """Execute SQL and return the DuckDB connection as cursor."""
        logger.debug(f"Executing SQL with {len(params or [])} parameters: {sql}")
        return self.conn.execute(sql, list(params or []))

    def execute_update(self, sql: str, params: list | None = None) -> int:
        """Execute an UPDATE or DELETE; DuckDB reports the count as a row."""
        row = self.execute(sql, params).fetchone()
        return row[0] if row else 0

    def begin(self) -> None:
        self.conn.begin()

    def commit(self) -> None:
        self.conn.commit()

    def rollback(self) -> None:
        self.conn.rollback()

    def get_columns(self, table_name: str, schema: str | None = None) -> list[dict]:
        """Get columns for a table."""
        sql = "SELECT column_name, data_type FROM duckdb_columns() WHERE table_name = ?"
        params = [table_name]
        if schema:
            sql += " AND schema_name = ?"
            params.append(schema)
        rows = self.execute(sql + " ORDER BY column_index", params).fetchall()
        return [{"column_name": row[0], "data_type": row[1]} for row in rows]

    def close(self) -> None:
        """Close database connection."""
        self.conn.close()

    @property
    def dialect(self) -> str:
        """Get SQLGlot dialect name."""
        return "duckdb"

    @property
    def raw_connection(self) -> Any:
        """Get underlying DuckDB connection."""
        return self.conn

    @classmethod
    def from_url(cls, url: str) -> "DuckDBAdapter":
        """Create adapter from connection URL.

        Args:
            url: Connection URL (e.g., "duckdb:///:memory:" or "duckdb:///path/to/db.duckdb")

        Returns:
            DuckDBAdapter instance
        """
        if not url.startswith("duckdb://"):
            raise ValueError(f"Invalid DuckDB URL: {url}")

        # duckdb:///:memory: -> :memory:
        # duckdb:///tmp/app.db -> /tmp/app.db
        db_path = url[len("duckdb://") :]
        if db_path in ("/:memory:", ":memory:", "", "/"):
            db_path = ":memory:"

        return cls(db_path)
