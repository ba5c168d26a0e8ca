"""
DDL generation for the destination engine

Builds CREATE SCHEMA / CREATE TABLE statements from discovered columns. Column
names are sanitized once here, and the same sanitized list is handed to the
bulk loader so the DDL and the load always bind the same columns in the same
order.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from sqldb_migration.core.dialects import Dialect
from sqldb_migration.core.identifiers import sanitize_identifier
from sqldb_migration.core.models import ColumnDescriptor
from sqldb_migration.core.type_mapping import DEFAULT_TYPE_MAPPER, Direction, TypeMapper


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableDefinition:
    """A destination table: its DDL and its ordered ``(column, type)`` pairs."""

    schema: str
    table: str
    columns: Tuple[Tuple[str, str], ...]
    statement: str

    @property
    def column_names(self) -> List[str]:
        return [name for name, _ in self.columns]


class DDLGenerator:
    """Generates destination DDL.

    Args:
        dialect: Dialect of the destination engine.
        direction: Conversion direction, or None when source and destination are
            the same kind of engine and types are copied verbatim.
        type_mapper: Mapper used for cross-engine type resolution.
    """

    def __init__(self,
                 dialect: Dialect,
                 direction: Optional[Direction] = None,
                 type_mapper: TypeMapper = DEFAULT_TYPE_MAPPER):
        self.dialect = dialect
        self.direction = direction
        self.type_mapper = type_mapper

    def create_schema_statement(self, name: str) -> str:
        return self.dialect.create_schema_statement(name)

    def column_type(self, column: ColumnDescriptor) -> str:
        if self.direction is None:
            return self.dialect.verbatim_type(column)
        return self.type_mapper.map(self.direction, column.source_type_name)

    def table_definition(self, schema: str, table: str, columns: Sequence[ColumnDescriptor]) -> TableDefinition:
        """Build the definition of a destination table.

        Args:
            schema: Destination schema name.
            table: Destination table name.
            columns: Source columns in discovery order.

        Returns:
            TableDefinition: The statement and its sanitized column list.
        """
        resolved = tuple((sanitize_identifier(column.name), self.column_type(column)) for column in columns)
        clauses = ", ".join(f"{self.dialect.quote_identifier(name)} {type_literal}" for name, type_literal in resolved)
        statement = f"CREATE TABLE {self.dialect.qualify(schema, table)} ({clauses})"
        logger.debug(f"Generated DDL: {statement}")
        return TableDefinition(schema=schema, table=table, columns=resolved, statement=statement)

    def create_table_statement(self, schema: str, table: str, columns: Sequence[ColumnDescriptor]) -> str:
        return self.table_definition(schema, table, columns).statement
