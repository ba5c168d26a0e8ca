"""
Data model for relational migrations

Descriptors for engines, schemas, tables and columns, the in-memory row buffer
that carries one table's rows between engines, the per-table result, and the
optional copy selection.
"""

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple


class EngineKind(str, Enum):
    """Database engines the migrator can read from and write to."""

    MSSQL = "mssql"
    PSQL = "psql"


@dataclass(frozen=True)
class EngineDescriptor:
    """One side of a migration: the engine kind and its connection string."""

    kind: EngineKind
    connection_string: str

    def __repr__(self) -> str:
        # Connection strings carry credentials
        return f"EngineDescriptor(kind={self.kind.value!r})"


@dataclass(frozen=True)
class SchemaDescriptor:
    name: str


@dataclass(frozen=True)
class TableDescriptor:
    schema: str
    name: str

    @property
    def display_name(self) -> str:
        return f"{self.schema}.{self.name}"


@dataclass(frozen=True)
class ColumnDescriptor:
    """A discovered column.

    ``source_type_name`` is the catalog's ``data_type`` spelling. The sizing
    fields are only used when a type is copied verbatim between engines of the
    same kind.
    """

    name: str
    source_type_name: str
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None


# Marker types. Values in the buffer stay plain str / datetime, the marker on
# the BufferColumn records what the source declared.

class FixedChar(str):
    """Blank-padded fixed width character column."""


class AwareDatetime(datetime.datetime):
    """Timezone-aware timestamp column."""


class Jsonb(str):
    """Binary JSON column whose values are held as JSON text."""


@dataclass(frozen=True)
class BufferColumn:
    """A column of a RowBuffer.

    Attributes:
        name: Column name as returned by the source cursor.
        value_type: Python type of the column's values (or a marker type).
        width: Byte width for integer and float columns, None otherwise.
    """

    name: str
    value_type: type
    width: Optional[int] = None


@dataclass
class RowBuffer:
    """All rows of one source table, materialized in memory."""

    columns: List[BufferColumn]
    rows: List[Tuple[Any, ...]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    @classmethod
    def from_declared(cls,
                      names: Sequence[str],
                      declared: Sequence[Tuple[type, Optional[int]]],
                      rows: Sequence[Sequence[Any]]) -> "RowBuffer":
        """Build a buffer, refining each declared type from the first non-null value.

        Args:
            names: Column names in cursor order.
            declared: ``(value_type, width)`` per column as reported by the driver.
            rows: Fetched rows.

        Returns:
            RowBuffer: The buffer with one BufferColumn per name.
        """
        materialized = [tuple(row) for row in rows]
        columns = []
        for index, (name, (value_type, width)) in enumerate(zip(names, declared)):
            value_type = _refine_value_type(value_type, materialized, index)
            columns.append(BufferColumn(name=name, value_type=value_type, width=width))
        return cls(columns=columns, rows=materialized)


def _refine_value_type(declared: type, rows: List[Tuple[Any, ...]], index: int) -> type:
    if declared is object:
        # the driver reported a type with no Python counterpart
        return declared
    for row in rows:
        value = row[index]
        if value is None:
            continue
        runtime = type(value)
        if runtime is datetime.datetime and value.tzinfo is not None:
            return AwareDatetime
        if isinstance(declared, type) and issubclass(declared, runtime):
            # keep marker types and the driver's declaration
            return declared
        return runtime
    return declared


@dataclass(frozen=True)
class CopySelectionEntry:
    schema: str
    tables: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CopySelection:
    """Restricts which schemas and tables are migrated.

    A disabled selection migrates everything. An entry without tables selects
    every table of its schema.
    """

    enabled: bool = False
    entries: Tuple[CopySelectionEntry, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CopySelection":
        if not data:
            return cls()
        entries = tuple(
            CopySelectionEntry(schema=entry["schema"], tables=tuple(entry.get("tables") or ()))
            for entry in data.get("entries") or ()
        )
        return cls(enabled=bool(data.get("enabled", False)), entries=entries)

    def includes_schema(self, schema: str) -> bool:
        if not self.enabled:
            return True
        return any(entry.schema == schema for entry in self.entries)

    def includes_table(self, schema: str, table: str) -> bool:
        if not self.enabled:
            return True
        for entry in self.entries:
            if entry.schema == schema and (not entry.tables or table in entry.tables):
                return True
        return False


@dataclass(frozen=True)
class TableResult:
    """Outcome of migrating one table. Either ``error`` is set or it succeeded."""

    schema: str
    table: str
    rows_copied: int = 0
    stage: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def reason(self) -> Optional[str]:
        if self.error is None:
            return None
        return f"{type(self.error).__name__}: {self.error}"

    def __str__(self) -> str:
        if self.succeeded:
            return f"[OK] {self.schema}.{self.table}: {self.rows_copied} rows"
        return f"[FAILED] {self.schema}.{self.table} ({self.stage}): {self.reason}"


DEFAULT_BULK_COPY_TIMEOUT = 300
DEFAULT_BATCH_SIZE = 1000


@dataclass(frozen=True)
class MigrationOptions:
    """Run options.

    Attributes:
        schema_suffix: Appended to every source schema name to form the
            destination schema name.
        bulk_copy_timeout: Seconds a single bulk load may take.
        batch_size: Rows per round trip on bulk paths that send batches.
    """

    schema_suffix: str = ""
    bulk_copy_timeout: int = DEFAULT_BULK_COPY_TIMEOUT
    batch_size: int = DEFAULT_BATCH_SIZE

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MigrationOptions":
        data = data or {}
        return cls(
            schema_suffix=str(data.get("schema_suffix", "")),
            bulk_copy_timeout=int(data.get("bulk_copy_timeout", DEFAULT_BULK_COPY_TIMEOUT)),
            batch_size=int(data.get("batch_size", DEFAULT_BATCH_SIZE)),
        )
