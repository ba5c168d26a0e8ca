"""
PostgreSQL adapter

This module provides the adapter for PostgreSQL. Rows are written with
``COPY ... FROM STDIN (FORMAT BINARY)`` through psycopg2's ``copy_expert``.
"""

import datetime
import decimal
import logging
import uuid
from types import MappingProxyType
from typing import Any, List, Sequence, Tuple

from sqldb_migration.adapters.pg_binary import encode_copy_stream
from sqldb_migration.core.adapter import SQLDBAdapter
from sqldb_migration.core.dialects import DIALECTS
from sqldb_migration.core.errors import DDLFailure, TransferFailure
from sqldb_migration.core.models import AwareDatetime, EngineKind, FixedChar, Jsonb, RowBuffer


logger = logging.getLogger(__name__)


# type OID -> (value type, byte width)
PG_VALUE_TYPES = MappingProxyType({
    16: (bool, None),
    17: (bytes, None),
    20: (int, 8),
    21: (int, 2),
    23: (int, 4),
    25: (str, None),
    114: (str, None),
    700: (float, 4),
    701: (float, 8),
    1042: (FixedChar, None),
    1043: (str, None),
    1082: (datetime.date, None),
    1083: (datetime.time, None),
    1114: (datetime.datetime, None),
    1184: (AwareDatetime, None),
    1186: (datetime.timedelta, None),
    1700: (decimal.Decimal, None),
    2950: (uuid.UUID, None),
    3802: (Jsonb, None),
})


class PostgresAdapter(SQLDBAdapter):
    """Adapter for PostgreSQL."""

    kind = EngineKind.PSQL
    dialect = DIALECTS[EngineKind.PSQL]

    def __init__(self):
        """Initialize a new PostgreSQL adapter."""
        super().__init__()
        self.conn = None
        self.cursor = None

    def connect(self, connection_string: str) -> bool:
        """Connect to PostgreSQL using psycopg2.

        Args:
            connection_string: A libpq connection string or URI,
                e.g. "host=localhost dbname=app user=postgres password=secret".

        Returns:
            bool: True if connection was successful, False otherwise.
        """
        try:
            import psycopg2
            import psycopg2.extras

            self.conn = psycopg2.connect(connection_string)
            # json / jsonb stay as text, uuid comes back as uuid.UUID
            psycopg2.extras.register_default_json(conn_or_curs=self.conn, loads=lambda value: value)
            psycopg2.extras.register_default_jsonb(conn_or_curs=self.conn, loads=lambda value: value)
            psycopg2.extras.register_uuid(conn_or_curs=self.conn)
            self.cursor = self.conn.cursor()
            logger.debug("Connected to PostgreSQL")
            return True
        except Exception as e:
            logger.error(f"Error connecting to PostgreSQL: {e}")
            self.disconnect()
            return False

    def disconnect(self) -> None:
        """Close the PostgreSQL connection."""
        if self.cursor:
            self.cursor.close()
        if self.conn:
            self.conn.close()
        self.cursor = None
        self.conn = None
        logger.debug("Disconnected from PostgreSQL")

    def _require_connection(self):
        if not self.conn or not self.cursor:
            raise ConnectionError("Not connected to PostgreSQL database")

    def fetch_all(self, query: str, params: Sequence[Any] = ()) -> List[Tuple[Any, ...]]:
        self._require_connection()
        try:
            self.cursor.execute(query, tuple(params))
            return self.cursor.fetchall()
        finally:
            # end the read transaction so no locks are held between queries
            self.conn.rollback()

    def execute_ddl(self, statement: str) -> None:
        self._require_connection()
        try:
            logger.debug(f"Executing DDL: {statement}")
            self.cursor.execute(statement)
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            raise DDLFailure(f"PostgreSQL rejected DDL: {e}") from e

    def read_table(self, schema: str, table: str) -> RowBuffer:
        """Read every row of a PostgreSQL table.

        Column value types come from the result's type OIDs; OIDs without a
        known Python counterpart are recorded as ``object``.
        """
        self._require_connection()
        query = f"SELECT * FROM {self.dialect.qualify(schema, table)}"
        try:
            logger.debug(f"Executing query: {query}")
            self.cursor.execute(query)
            rows = self.cursor.fetchall()
            description = self.cursor.description
        except Exception as e:
            raise TransferFailure(f"Error reading {schema}.{table} from PostgreSQL: {e}") from e
        finally:
            self.conn.rollback()

        names = [column[0] for column in description]
        declared = [PG_VALUE_TYPES.get(column[1], (object, None)) for column in description]
        return RowBuffer.from_declared(names, declared, rows)

    def bulk_load(self, schema: str, table: str, columns: Sequence[str], buffer: RowBuffer) -> int:
        """Load a buffer with a binary COPY.

        Returns:
            int: Number of rows written.

        Raises:
            TransferFailure: If a column cannot be encoded or the COPY fails.
        """
        self._require_connection()
        stream = encode_copy_stream(buffer)
        column_list = ", ".join(self.dialect.quote_identifier(name) for name in columns)
        copy_sql = f"COPY {self.dialect.qualify(schema, table)} ({column_list}) FROM STDIN (FORMAT BINARY)"
        timeout_ms = int(self.options.bulk_copy_timeout * 1000)
        try:
            self.cursor.execute(f"SET LOCAL statement_timeout = {timeout_ms}")
            self.cursor.copy_expert(copy_sql, stream)
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            raise TransferFailure(f"COPY into {schema}.{table} failed: {e}") from e
        logger.debug(f"Copied {len(buffer)} rows into PostgreSQL table {schema}.{table}")
        return len(buffer)
