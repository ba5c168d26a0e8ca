"""
SQL Server adapter

This module provides the adapter for Microsoft SQL Server through pyodbc. Rows
are written with ``fast_executemany``, which sends parameter arrays to the
server in bulk instead of one INSERT round trip per row.
"""

import datetime
import json
import logging
import struct
from typing import Any, List, Optional, Sequence, Tuple

from sqldb_migration.core.adapter import SQLDBAdapter
from sqldb_migration.core.dialects import DIALECTS
from sqldb_migration.core.errors import DDLFailure, TransferFailure
from sqldb_migration.core.models import EngineKind, RowBuffer


logger = logging.getLogger(__name__)


SQL_DATETIMEOFFSET = -155


def parse_datetimeoffset(raw: bytes) -> datetime.datetime:
    """Output converter for DATETIMEOFFSET columns, which pyodbc returns as raw bytes."""
    year, month, day, hour, minute, second, nanoseconds, offset_hours, offset_minutes = struct.unpack("<6hI2h", raw)
    tz = datetime.timezone(datetime.timedelta(hours=offset_hours, minutes=offset_minutes))
    return datetime.datetime(year, month, day, hour, minute, second, nanoseconds // 1000, tzinfo=tz)


def integer_width(digits: Optional[int]) -> int:
    """Byte width of an integer column from its decimal precision."""
    if digits is None:
        return 8
    if digits <= 5:
        return 2
    if digits <= 10:
        return 4
    return 8


def _declared_type(column) -> Tuple[type, Optional[int]]:
    # pyodbc description: (name, type_code, display_size, internal_size, precision, scale, null_ok)
    type_code = column[1]
    if not isinstance(type_code, type):
        return object, None
    digits = column[4] or column[3]
    if type_code is int:
        return int, integer_width(digits)
    if type_code is float:
        return float, 4 if digits is not None and digits <= 24 else 8
    return type_code, None


def adapt_value(value: Any) -> Any:
    """Convert a value into something pyodbc can bind."""
    if isinstance(value, memoryview):
        return value.tobytes()
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, datetime.datetime) and value.tzinfo is not None:
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        if datetime.timedelta(0) <= value < datetime.timedelta(days=1):
            return (datetime.datetime.min + value).time()
        return str(value)
    return value


class MssqlAdapter(SQLDBAdapter):
    """Adapter for Microsoft SQL Server."""

    kind = EngineKind.MSSQL
    dialect = DIALECTS[EngineKind.MSSQL]

    def __init__(self):
        """Initialize a new SQL Server adapter."""
        super().__init__()
        self.conn = None
        self.cursor = None

    def connect(self, connection_string: str) -> bool:
        """Connect to SQL Server using pyodbc.

        Args:
            connection_string: ODBC connection string, e.g.
                "DRIVER={ODBC Driver 18 for SQL Server};SERVER=host,1433;DATABASE=db;UID=sa;PWD=..."

        Returns:
            bool: True if connection was successful, False otherwise.
        """
        try:
            import pyodbc

            # native_uuid is a pyodbc module setting, so it applies to every
            # pyodbc connection in the process, not just this one
            pyodbc.native_uuid = True
            self.conn = pyodbc.connect(connection_string, autocommit=False)
            self.conn.add_output_converter(SQL_DATETIMEOFFSET, parse_datetimeoffset)
            self.cursor = self.conn.cursor()
            logger.debug("Connected to SQL Server")
            return True
        except Exception as e:
            logger.error(f"Error connecting to SQL Server: {e}")
            self.disconnect()
            return False

    def disconnect(self) -> None:
        """Close the SQL Server connection."""
        if self.cursor:
            self.cursor.close()
        if self.conn:
            self.conn.close()
        self.cursor = None
        self.conn = None
        logger.debug("Disconnected from SQL Server")

    def _require_connection(self):
        if not self.conn or not self.cursor:
            raise ConnectionError("Not connected to SQL Server database")

    def fetch_all(self, query: str, params: Sequence[Any] = ()) -> List[Tuple[Any, ...]]:
        self._require_connection()
        try:
            self.cursor.execute(query, *params)
            return [tuple(row) for row in self.cursor.fetchall()]
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
            raise DDLFailure(f"SQL Server rejected DDL: {e}") from e

    def read_table(self, schema: str, table: str) -> RowBuffer:
        """Read every row of a SQL Server table into a RowBuffer."""
        self._require_connection()
        query = f"SELECT * FROM {self.dialect.qualify(schema, table)}"
        try:
            logger.debug(f"Executing query: {query}")
            self.cursor.execute(query)
            rows = self.cursor.fetchall()
            description = self.cursor.description
        except Exception as e:
            raise TransferFailure(f"Error reading {schema}.{table} from SQL Server: {e}") from e
        finally:
            self.conn.rollback()

        names = [column[0] for column in description]
        declared = [_declared_type(column) for column in description]
        return RowBuffer.from_declared(names, declared, rows)

    def bulk_load(self, schema: str, table: str, columns: Sequence[str], buffer: RowBuffer) -> int:
        """Insert a buffer with fast_executemany in batches of ``options.batch_size``.

        The connection's query timeout is raised to ``options.bulk_copy_timeout``
        for the duration of the load.

        Returns:
            int: Number of rows written.

        Raises:
            TransferFailure: If any batch is rejected; the whole load is rolled back.
        """
        self._require_connection()
        if not buffer.rows:
            return 0

        column_list = ", ".join(self.dialect.quote_identifier(name) for name in columns)
        placeholders = ", ".join("?" for _ in columns)
        insert_query = f"INSERT INTO {self.dialect.qualify(schema, table)} ({column_list}) VALUES ({placeholders})"
        rows = [tuple(adapt_value(value) for value in row) for row in buffer.rows]
        batch_size = max(1, self.options.batch_size)

        previous_timeout = self.conn.timeout
        try:
            self.conn.timeout = self.options.bulk_copy_timeout
            cursor = self.conn.cursor()
            try:
                cursor.fast_executemany = True
                for batch_count, start in enumerate(range(0, len(rows), batch_size), start=1):
                    batch = rows[start:start + batch_size]
                    cursor.executemany(insert_query, batch)
                    logger.debug(f"Inserted batch {batch_count} ({len(batch)} rows) into {schema}.{table}")
            finally:
                cursor.close()
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            raise TransferFailure(f"Bulk insert into {schema}.{table} failed: {e}") from e
        finally:
            self.conn.timeout = previous_timeout
        return len(rows)
