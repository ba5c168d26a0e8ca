"""
Bulk row transfer

Moves one table's rows from a source adapter to a destination adapter: read the
whole table into a RowBuffer, then hand it to the destination's bulk path.
"""

import logging

from sqldb_migration.core.adapter import SQLDBAdapter
from sqldb_migration.core.ddl import TableDefinition
from sqldb_migration.core.errors import TransferFailure
from sqldb_migration.core.models import TableDescriptor


logger = logging.getLogger(__name__)


class BulkTransferEngine:
    """Copies table rows through the destination engine's bulk-load path."""

    def transfer(self,
                 source: SQLDBAdapter,
                 destination: SQLDBAdapter,
                 table: TableDescriptor,
                 definition: TableDefinition) -> int:
        """Copy every row of ``table`` into the table described by ``definition``.

        The buffer is bound to ``definition.column_names`` positionally, so the
        source column order must match the DDL's.

        Args:
            source: Connected source adapter.
            destination: Connected destination adapter.
            table: Source table.
            definition: Destination table created from the source's columns.

        Returns:
            int: Number of rows written.

        Raises:
            TransferFailure: If reading, encoding or writing fails, or the
                buffer does not have the definition's column count.
        """
        buffer = source.read_table(table.schema, table.name)
        logger.debug(f"Read {len(buffer)} rows from {table.display_name}")

        expected = len(definition.columns)
        if len(buffer.columns) != expected:
            raise TransferFailure(
                f"{table.display_name} returned {len(buffer.columns)} columns, "
                f"destination {definition.schema}.{definition.table} has {expected}"
            )

        return destination.bulk_load(definition.schema, definition.table, definition.column_names, buffer)
