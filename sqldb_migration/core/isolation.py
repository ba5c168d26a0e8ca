"""
Per-table failure isolation

Runs the work for one table and turns any non-fatal exception into a failed
TableResult, so the migration can move on to the next table. Failed results are
collected in an append-only FailureManifest.
"""

import logging
from typing import Callable, Iterator, List

from sqldb_migration.core.errors import MigrationError
from sqldb_migration.core.models import TableResult


logger = logging.getLogger(__name__)


STAGE_DDL = "ddl"
STAGE_TRANSFER = "transfer"


class FailureManifest:
    """Ordered record of the tables that failed to migrate."""

    def __init__(self):
        self._failures: List[TableResult] = []

    def record(self, result: TableResult) -> None:
        if result.succeeded:
            raise ValueError(f"Cannot record successful table {result.schema}.{result.table} as a failure")
        self._failures.append(result)

    @property
    def failures(self) -> List[TableResult]:
        return list(self._failures)

    def is_empty(self) -> bool:
        return not self._failures

    def __len__(self) -> int:
        return len(self._failures)

    def __iter__(self) -> Iterator[TableResult]:
        return iter(list(self._failures))


class StageTracker:
    """Tracks which stage of a table's migration is running."""

    def __init__(self):
        self.stage = STAGE_DDL

    def enter(self, stage: str) -> None:
        self.stage = stage


def is_fatal(error: BaseException) -> bool:
    return isinstance(error, MigrationError) and error.fatal


class FailureIsolation:
    """Runs one table's migration step and records its outcome exactly once."""

    def __init__(self, manifest: FailureManifest):
        self.manifest = manifest

    def run(self, schema: str, table: str, step: Callable[[StageTracker], int]) -> TableResult:
        """Run ``step`` for a table.

        Args:
            schema: Source schema name.
            table: Source table name.
            step: Callable doing the table's work. It receives a StageTracker to
                report the stage it has reached and returns the rows copied.

        Returns:
            TableResult: The table's outcome. Failed outcomes are also recorded
            in the manifest.

        Raises:
            MigrationError: Fatal errors (connectivity, discovery) propagate.
        """
        tracker = StageTracker()
        try:
            rows_copied = step(tracker)
        except Exception as e:
            if is_fatal(e):
                raise
            result = TableResult(schema=schema, table=table, stage=tracker.stage, error=e)
            logger.error(f"Table {schema}.{table} failed during {tracker.stage}: {result.reason}")
            self.manifest.record(result)
            return result
        return TableResult(schema=schema, table=table, rows_copied=rows_copied)

    def fail(self, schema: str, table: str, stage: str, error: BaseException) -> TableResult:
        """Record a failure for a table whose step never ran."""
        result = TableResult(schema=schema, table=table, stage=stage, error=error)
        logger.error(f"Table {schema}.{table} failed during {stage}: {result.reason}")
        self.manifest.record(result)
        return result
