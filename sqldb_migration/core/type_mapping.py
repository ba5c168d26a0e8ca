"""
Column type mapping between SQL Server and PostgreSQL

The mapping tables are plain data keyed by the lower-cased ``data_type``
spelling of the source catalog. A type missing from a table resolves to the
direction's fallback, a maximum-width text type, so a migration never stops on
an unfamiliar column type. Some entries are lossy on purpose (json to
NVARCHAR(MAX), interval to TIME, and similar).
"""

import logging
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from sqldb_migration.core.models import EngineKind


logger = logging.getLogger(__name__)


class Direction(str, Enum):
    """Conversion direction between two different engines."""

    MSSQL_TO_PSQL = "mssql->psql"
    PSQL_TO_MSSQL = "psql->mssql"

    @classmethod
    def between(cls, source: EngineKind, destination: EngineKind) -> Optional["Direction"]:
        """Return the direction for a source/destination pair, None for same-kind pairs."""
        return _DIRECTIONS.get((source, destination))


_DIRECTIONS = {
    (EngineKind.MSSQL, EngineKind.PSQL): Direction.MSSQL_TO_PSQL,
    (EngineKind.PSQL, EngineKind.MSSQL): Direction.PSQL_TO_MSSQL,
}


MSSQL_TO_PSQL_TYPES = MappingProxyType({
    "bigint": "bigint",
    "int": "integer",
    "smallint": "smallint",
    "tinyint": "smallint",
    "bit": "boolean",
    "decimal": "numeric",
    "numeric": "numeric",
    "money": "numeric",
    "smallmoney": "numeric",
    "float": "double precision",
    "real": "real",
    "date": "date",
    "datetime": "timestamp",
    "datetime2": "timestamp",
    "smalldatetime": "timestamp",
    "datetimeoffset": "timestamptz",
    "time": "time",
    "char": "bpchar",
    "nchar": "bpchar",
    "varchar": "text",
    "nvarchar": "text",
    "text": "text",
    "ntext": "text",
    "xml": "text",
    "binary": "bytea",
    "varbinary": "bytea",
    "image": "bytea",
    # SQL Server's timestamp is rowversion, an 8 byte binary counter
    "timestamp": "bytea",
    "rowversion": "bytea",
    "uniqueidentifier": "uuid",
})

PSQL_TO_MSSQL_TYPES = MappingProxyType({
    "bigint": "BIGINT",
    "integer": "INT",
    "smallint": "SMALLINT",
    "boolean": "BIT",
    "bit": "BIT",
    "numeric": "DECIMAL(38, 10)",
    "real": "REAL",
    "double precision": "FLOAT",
    "money": "MONEY",
    "character": "NVARCHAR(MAX)",
    "character varying": "NVARCHAR(MAX)",
    "text": "NVARCHAR(MAX)",
    "date": "DATE",
    "time": "TIME",
    "time without time zone": "TIME",
    "interval": "TIME",
    "timestamp": "DATETIME2",
    "timestamp without time zone": "DATETIME2",
    "timestamptz": "DATETIMEOFFSET",
    "timestamp with time zone": "DATETIMEOFFSET",
    "uuid": "UNIQUEIDENTIFIER",
    "bytea": "VARBINARY(MAX)",
    "bit varying": "NVARCHAR(MAX)",
    "json": "NVARCHAR(MAX)",
    "jsonb": "NVARCHAR(MAX)",
    "cidr": "NVARCHAR(MAX)",
    "inet": "NVARCHAR(MAX)",
    "macaddr": "NVARCHAR(MAX)",
    "tsvector": "NVARCHAR(MAX)",
    "tsquery": "NVARCHAR(MAX)",
    "array": "NVARCHAR(MAX)",
    "user-defined": "NVARCHAR(MAX)",
})

FALLBACK_TYPES = MappingProxyType({
    Direction.MSSQL_TO_PSQL: "text",
    Direction.PSQL_TO_MSSQL: "NVARCHAR(MAX)",
})


class TypeMapper:
    """Resolves a source column type to a destination type literal.

    Lookups are case-insensitive and never raise; a miss returns the
    direction's fallback type.
    """

    def __init__(self,
                 tables: Mapping[Direction, Mapping[str, str]],
                 fallbacks: Mapping[Direction, str]):
        self._entries: Dict[Tuple[Direction, str], str] = {}
        for direction, table in tables.items():
            for source_type, destination_type in table.items():
                self._entries[(direction, source_type.lower())] = destination_type
        self._fallbacks = dict(fallbacks)

    def map(self, direction: Direction, source_type_name: str) -> str:
        """Map a source type name to the destination type literal.

        Args:
            direction: Conversion direction.
            source_type_name: Catalog spelling of the source type, any case.

        Returns:
            str: The destination type literal, or the fallback on a miss.
        """
        key = (direction, (source_type_name or "").strip().lower())
        destination_type = self._entries.get(key)
        if destination_type is None:
            destination_type = self.fallback(direction)
            logger.debug(f"No {direction.value} mapping for type '{source_type_name}', using {destination_type}")
        return destination_type

    def fallback(self, direction: Direction) -> str:
        return self._fallbacks[direction]

    def known_types(self, direction: Direction):
        """Return the source type names mapped for a direction."""
        return sorted(name for (entry_direction, name) in self._entries if entry_direction == direction)


DEFAULT_TYPE_MAPPER = TypeMapper(
    tables={
        Direction.MSSQL_TO_PSQL: MSSQL_TO_PSQL_TYPES,
        Direction.PSQL_TO_MSSQL: PSQL_TO_MSSQL_TYPES,
    },
    fallbacks=FALLBACK_TYPES,
)
