"""
SQL dialect rules for SQL Server and PostgreSQL

Identifier quoting, parameter placeholders, schema creation, verbatim type
rendering and the reserved schema names of each engine. Nothing here talks to
a database.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import FrozenSet, Tuple

from sqldb_migration.core.models import ColumnDescriptor, EngineKind


@dataclass(frozen=True)
class SchemaExclusion:
    """Schema names an engine reserves for itself."""

    names: FrozenSet[str]
    prefixes: Tuple[str, ...] = ()
    case_sensitive: bool = True

    def excludes(self, schema: str) -> bool:
        if self.case_sensitive:
            names, prefixes, candidate = self.names, self.prefixes, schema
        else:
            names = {name.lower() for name in self.names}
            prefixes = tuple(prefix.lower() for prefix in self.prefixes)
            candidate = schema.lower()
        return candidate in names or candidate.startswith(prefixes)


class Dialect(ABC):
    """Syntax rules of one database engine."""

    kind: EngineKind
    placeholder: str
    reserved_schemas: SchemaExclusion

    @abstractmethod
    def quote_identifier(self, identifier: str) -> str:
        pass

    def qualify(self, schema: str, table: str) -> str:
        return f"{self.quote_identifier(schema)}.{self.quote_identifier(table)}"

    @abstractmethod
    def create_schema_statement(self, schema: str) -> str:
        pass

    @abstractmethod
    def verbatim_type(self, column: ColumnDescriptor) -> str:
        """Render a column's declared type for an engine of the same kind."""
        pass


class MssqlDialect(Dialect):
    kind = EngineKind.MSSQL
    placeholder = "?"
    reserved_schemas = SchemaExclusion(
        names=frozenset({
            "guest",
            "INFORMATION_SCHEMA",
            "sys",
            "db_owner",
            "db_accessadmin",
            "db_securityadmin",
            "db_ddladmin",
            "db_backupoperator",
            "db_datareader",
            "db_datawriter",
            "db_denydatareader",
            "db_denydatawriter",
        }),
        case_sensitive=False,
    )

    _LENGTH_TYPES = frozenset({"char", "varchar", "nchar", "nvarchar", "binary", "varbinary"})
    _PRECISION_TYPES = frozenset({"decimal", "numeric"})

    def quote_identifier(self, identifier: str) -> str:
        return "[" + identifier.replace("]", "]]") + "]"

    def create_schema_statement(self, schema: str) -> str:
        # CREATE SCHEMA must be the only statement in its batch
        literal = schema.replace("'", "''")
        inner = f"CREATE SCHEMA {self.quote_identifier(schema)}".replace("'", "''")
        return f"IF SCHEMA_ID(N'{literal}') IS NULL EXEC(N'{inner}')"

    def verbatim_type(self, column: ColumnDescriptor) -> str:
        base = column.source_type_name.lower()
        if base in self._LENGTH_TYPES and column.max_length is not None:
            length = "max" if column.max_length == -1 else str(column.max_length)
            return f"{base}({length})"
        if base in self._PRECISION_TYPES and column.precision is not None:
            return f"{base}({column.precision}, {column.scale or 0})"
        return base


class PostgresDialect(Dialect):
    kind = EngineKind.PSQL
    placeholder = "%s"
    reserved_schemas = SchemaExclusion(
        names=frozenset({"information_schema", "pg_catalog", "pg_toast"}),
        prefixes=("pg_temp_", "pg_toast_temp_"),
        case_sensitive=True,
    )

    _LENGTH_TYPES = frozenset({"character", "character varying", "bit", "bit varying"})

    def quote_identifier(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def create_schema_statement(self, schema: str) -> str:
        return f"CREATE SCHEMA IF NOT EXISTS {self.quote_identifier(schema)}"

    def verbatim_type(self, column: ColumnDescriptor) -> str:
        base = column.source_type_name.lower()
        if base in self._LENGTH_TYPES and column.max_length is not None:
            return f"{base}({column.max_length})"
        if base == "numeric" and column.precision is not None:
            return f"numeric({column.precision}, {column.scale or 0})"
        return base


DIALECTS = {
    EngineKind.MSSQL: MssqlDialect(),
    EngineKind.PSQL: PostgresDialect(),
}
