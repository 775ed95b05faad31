"""Base database adapter interface."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from relquery.validation import TransactionError

logger = logging.getLogger(__name__)


class BaseDatabaseAdapter(ABC):
    """Abstract base class for database adapters.

    Adapters run parametrized SQL (``?`` placeholders) against one connection
    and track the transaction that connection is in, so that nested
    transactions can join the enclosing one.
    """

    _transaction_depth: int = 0

    @abstractmethod
    def execute(self, sql: str, params: list | None = None) -> Any:
        """Execute SQL with positional parameters and return a cursor.

        Args:
            sql: SQL statement with ``?`` placeholders
            params: Parameter values, one per placeholder

        Returns:
            DB-API style cursor
        """
        raise NotImplementedError

    @abstractmethod
    def execute_update(self, sql: str, params: list | None = None) -> int:
        """Execute an UPDATE or DELETE and return the affected-row count."""
        raise NotImplementedError

    @abstractmethod
    def get_columns(self, table_name: str, schema: str | None = None) -> list[dict]:
        """Get columns for a table.

        Args:
            table_name: Name of table
            schema: Schema name (optional)

        Returns:
            List of dicts with 'column_name' and 'data_type' keys, in table order
        """
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Close database connection."""
        raise NotImplementedError

    @property
    @abstractmethod
    def dialect(self) -> str:
        """Get SQLGlot dialect name.

        Returns:
            Dialect name (e.g., 'duckdb', 'sqlite')
        """
        raise NotImplementedError

    @property
    @abstractmethod
    def raw_connection(self) -> Any:
        """Get underlying database connection object."""
        raise NotImplementedError

    @property
    def supports_returning(self) -> bool:
        """Whether INSERT ... RETURNING is available."""
        return True

    def fetch_all(self, sql: str, params: list | None = None) -> list[dict]:
        """Execute a query and return its rows as dicts keyed by column label."""
        cursor = self.execute(sql, params)
        if cursor.description is None:
            return []
        names = [column[0] for column in cursor.description]
        return [dict(zip(names, row)) for row in cursor.fetchall()]

    def execute_insert(self, sql: str, params: list | None = None) -> list[dict]:
        """Execute an INSERT ... RETURNING and return the returned rows."""
        return self.fetch_all(sql, params)

    def begin(self) -> None:
        self.execute("BEGIN TRANSACTION")

    def commit(self) -> None:
        self.execute("COMMIT")

    def rollback(self) -> None:
        self.execute("ROLLBACK")

    @property
    def in_transaction(self) -> bool:
        return self._transaction_depth > 0

    @contextmanager
    def transaction(self, propagate: bool = False) -> Iterator["BaseDatabaseAdapter"]:
        """Run the enclosed block in a database transaction.

        Args:
            propagate: Join an already active transaction instead of failing

        Raises:
            TransactionError: If a transaction is active and propagate is False
        """
        if self.in_transaction:
            if not propagate:
                raise TransactionError(
                    "A transaction is already active on this connection. "
                    "Pass propagate=True to run inside the enclosing transaction."
                )
            self._transaction_depth += 1
            try:
                yield self
            finally:
                self._transaction_depth -= 1
            return

        logger.debug("Beginning transaction")
        self.begin()
        self._transaction_depth = 1
        try:
            yield self
        except BaseException as e:
            logger.warning(f"Rolling back transaction: {e}")
            self.rollback()
            raise
        finally:
            self._transaction_depth = 0
        self.commit()
        logger.debug("Committed transaction")
