"""SQLite database adapter."""

import logging
import sqlite3
from typing import Any

from relquery.db.base import BaseDatabaseAdapter

logger = logging.getLogger(__name__)


class SQLiteAdapter(BaseDatabaseAdapter):
    """SQLite database adapter built on the standard library driver."""

    def __init__(self, path: str = ":memory:"):
        """Initialize SQLite adapter.

        Args:
            path: Database file path or ":memory:" for in-memory database
        """
        # Transactions are issued explicitly by the adapter
        self.conn = sqlite3.connect(path, isolation_level=None)

    def execute(self, sql: str, params: list | None = None) -> Any:
        """Execute SQL and return a sqlite3 cursor."""
        logger.debug(f"Executing SQL with {len(params or [])} parameters: {sql}")
        return self.conn.execute(sql, list(params or []))

    def execute_update(self, sql: str, params: list | None = None) -> int:
        return self.execute(sql, params).rowcount

    def begin(self) -> None:
        self.execute("BEGIN")

    def get_columns(self, table_name: str, schema: str | None = None) -> list[dict]:
        """Get columns for a table."""
        if schema:
            rows = self.execute("SELECT name, type FROM pragma_table_info(?, ?)", [table_name, schema]).fetchall()
        else:
            rows = self.execute("SELECT name, type FROM pragma_table_info(?)", [table_name]).fetchall()
        return [{"column_name": row[0], "data_type": row[1]} for row in rows]

    def close(self) -> None:
        """Close database connection."""
        self.conn.close()

    @property
    def dialect(self) -> str:
        return "sqlite"

    @property
    def supports_returning(self) -> bool:
        return sqlite3.sqlite_version_info >= (3, 35, 0)

    @property
    def raw_connection(self) -> Any:
        return self.conn

    @classmethod
    def from_url(cls, url: str) -> "SQLiteAdapter":
        """Create adapter from connection URL.

        Args:
            url: Connection URL (e.g., "sqlite:///:memory:" or "sqlite:///path/to/app.db")

        Returns:
            SQLiteAdapter instance
        """
        if not url.startswith("sqlite://"):
            raise ValueError(f"Invalid SQLite URL: {url}")

        db_path = url[len("sqlite://") :]
        if db_path in ("/:memory:", ":memory:", "", "/"):
            db_path = ":memory:"

        return cls(db_path)
