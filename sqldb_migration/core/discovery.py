"""
Schema discovery

Reads schema, table and column metadata from a source adapter through the
``information_schema`` views both engines provide.
"""

import logging
from typing import List

from sqldb_migration.core.adapter import SQLDBAdapter
from sqldb_migration.core.errors import DataIntegrityError, DiscoveryFailure
from sqldb_migration.core.models import ColumnDescriptor, SchemaDescriptor, TableDescriptor


logger = logging.getLogger(__name__)


SCHEMAS_QUERY = "SELECT schema_name FROM information_schema.schemata ORDER BY schema_name"

TABLES_QUERY = (
    "SELECT table_name FROM information_schema.tables "
    "WHERE table_schema = {p} AND table_type = 'BASE TABLE' "
    "ORDER BY table_name"
)

COLUMNS_QUERY = (
    "SELECT column_name, data_type, character_maximum_length, numeric_precision, numeric_scale "
    "FROM information_schema.columns "
    "WHERE table_schema = {p} AND table_name = {p} "
    "ORDER BY ordinal_position"
)


class SchemaDiscoverer:
    """Lists the user schemas, tables and columns of a source database."""

    def __init__(self, adapter: SQLDBAdapter):
        self.adapter = adapter
        self.dialect = adapter.dialect

    def list_schemas(self) -> List[SchemaDescriptor]:
        """List schemas, leaving out the ones the engine reserves for itself."""
        rows = self._query(SCHEMAS_QUERY, ())
        schemas = []
        for (name,) in rows:
            if self.dialect.reserved_schemas.excludes(name):
                logger.debug(f"Skipping reserved schema {name}")
                continue
            schemas.append(SchemaDescriptor(name=name))
        logger.debug(f"Discovered {len(schemas)} schemas")
        return schemas

    def list_tables(self, schema: str) -> List[TableDescriptor]:
        """List the base tables of a schema. An empty schema yields an empty list."""
        query = TABLES_QUERY.format(p=self.dialect.placeholder)
        rows = self._query(query, (schema,))
        return [TableDescriptor(schema=schema, name=name) for (name,) in rows]

    def list_columns(self, schema: str, table: str) -> List[ColumnDescriptor]:
        """List a table's columns in ordinal order.

        Raises:
            DiscoveryFailure: If the catalog query fails.
            DataIntegrityError: If the table has no columns.
        """
        query = COLUMNS_QUERY.format(p=self.dialect.placeholder)
        rows = self._query(query, (schema, table))
        if not rows:
            raise DataIntegrityError(f"Table {schema}.{table} has no columns")
        return [
            ColumnDescriptor(
                name=name,
                source_type_name=data_type,
                max_length=_as_int(max_length),
                precision=_as_int(precision),
                scale=_as_int(scale),
            )
            for name, data_type, max_length, precision, scale in rows
        ]

    def _query(self, query, params):
        try:
            return self.adapter.fetch_all(query, params)
        except Exception as e:
            raise DiscoveryFailure(f"Catalog query failed on {self.dialect.kind.value}: {e}") from e


def _as_int(value):
    return None if value is None else int(value)
