"""
SQL DB Migration Core Functionality

This module provides the adapter interface every database engine implements
for the relational migration framework.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Sequence, Tuple

from sqldb_migration.core.dialects import Dialect
from sqldb_migration.core.models import EngineKind, MigrationOptions, RowBuffer


class SQLDBAdapter(ABC):
    """Abstract base class for relational database adapters."""

    kind: EngineKind
    dialect: Dialect

    def __init__(self):
        self.options = MigrationOptions()

    def configure(self, options: MigrationOptions) -> None:
        """Apply run options such as the bulk load timeout and batch size."""
        self.options = options

    @abstractmethod
    def connect(self, connection_string: str) -> bool:
        """Connect to the database.

        Args:
            connection_string: Engine specific connection string.

        Returns:
            bool: True if connection was successful, False otherwise.
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close the database connection."""
        pass

    @abstractmethod
    def fetch_all(self, query: str, params: Sequence[Any] = ()) -> List[Tuple[Any, ...]]:
        """Run a read-only query and return every row.

        Args:
            query: SQL text using the dialect's parameter placeholder.
            params: Query parameters.

        Returns:
            List[Tuple[Any, ...]]: The fetched rows.
        """
        pass

    @abstractmethod
    def execute_ddl(self, statement: str) -> None:
        """Execute and commit a DDL statement.

        Raises:
            DDLFailure: If the database rejects the statement.
        """
        pass

    @abstractmethod
    def read_table(self, schema: str, table: str) -> RowBuffer:
        """Read every row of a table into memory.

        Raises:
            TransferFailure: If the rows cannot be read.
        """
        pass

    @abstractmethod
    def bulk_load(self, schema: str, table: str, columns: Sequence[str], buffer: RowBuffer) -> int:
        """Write a buffer into an existing table through the engine's bulk path.

        Args:
            schema: Destination schema name.
            table: Destination table name.
            columns: Destination column names, in buffer column order.
            buffer: Rows to write.

        Returns:
            int: Number of rows written.

        Raises:
            TransferFailure: If encoding or writing fails.
        """
        pass
