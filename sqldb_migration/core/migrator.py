"""
SQL Database Migration Core

This module provides the main migrator class for orchestrating migrations between
SQL Server and PostgreSQL databases.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple, Type

from sqldb_migration.core.adapter import SQLDBAdapter
from sqldb_migration.core.ddl import DDLGenerator
from sqldb_migration.core.discovery import SchemaDiscoverer
from sqldb_migration.core.errors import ConnectivityFailure, DDLFailure
from sqldb_migration.core.isolation import (
    STAGE_DDL,
    STAGE_TRANSFER,
    FailureIsolation,
    FailureManifest,
    StageTracker,
)
from sqldb_migration.core.models import (
    CopySelection,
    EngineDescriptor,
    EngineKind,
    MigrationOptions,
    TableDescriptor,
)
from sqldb_migration.core.transfer import BulkTransferEngine
from sqldb_migration.core.type_mapping import DEFAULT_TYPE_MAPPER, Direction, TypeMapper


logger = logging.getLogger(__name__)


class ProgressObserver:
    """Receives progress notifications during a migration."""

    def on_progress(self, stage: str, detail: str) -> None:
        pass


class LoggingProgressObserver(ProgressObserver):
    """Writes progress notifications to the log."""

    def on_progress(self, stage: str, detail: str) -> None:
        logger.info(f"[{stage}] {detail}")


@dataclass(frozen=True)
class Pipeline:
    """How tables move between one source kind and one destination kind.

    ``direction`` is None when both sides are the same kind of engine, in which
    case column types are copied verbatim instead of being mapped.
    """

    source: EngineKind
    destination: EngineKind
    direction: Optional[Direction]


# PostgreSQL to PostgreSQL is not supported; migrate() treats it as a no-op
PIPELINES: Dict[Tuple[EngineKind, EngineKind], Pipeline] = {
    (pipeline.source, pipeline.destination): pipeline
    for pipeline in (
        Pipeline(EngineKind.MSSQL, EngineKind.MSSQL, None),
        Pipeline(EngineKind.MSSQL, EngineKind.PSQL, Direction.MSSQL_TO_PSQL),
        Pipeline(EngineKind.PSQL, EngineKind.MSSQL, Direction.PSQL_TO_MSSQL),
    )
}


class DBMigrator:
    """Main class for orchestrating database-to-database migrations."""

    def __init__(self,
                 adapters_registry: Dict[str, Type[SQLDBAdapter]],
                 source_type: str,
                 target_type: str,
                 type_mapper: TypeMapper = DEFAULT_TYPE_MAPPER,
                 options: Optional[MigrationOptions] = None,
                 progress: Optional[ProgressObserver] = None,
                 pipelines: Mapping[Tuple[EngineKind, EngineKind], Pipeline] = PIPELINES):
        """
        Initialize the migrator with source and target database types.

        Args:
            adapters_registry: Dictionary mapping database types to adapter classes
            source_type: The type of the source database (e.g., "mssql", "psql")
            target_type: The type of the target database (e.g., "psql", "mssql")
            type_mapper: Mapper used to resolve column types across engines
            options: Run options (schema suffix, bulk load timeout, batch size)
            progress: Observer notified as schemas and tables are processed

        Raises:
            ValueError: If an unsupported database type is provided
        """
        if source_type not in adapters_registry:
            raise ValueError(f"Unsupported source database type: {source_type}")
        if target_type not in adapters_registry:
            raise ValueError(f"Unsupported target database type: {target_type}")

        self.source_adapter = adapters_registry[source_type]()
        self.target_adapter = adapters_registry[target_type]()
        self.source_type = source_type
        self.target_type = target_type
        self.type_mapper = type_mapper
        self.options = options or MigrationOptions()
        self.progress = progress or LoggingProgressObserver()
        self.pipelines = pipelines
        self.transfer_engine = BulkTransferEngine()

    def migrate(self,
                source: EngineDescriptor,
                destination: EngineDescriptor,
                copy_selection: Optional[CopySelection] = None) -> FailureManifest:
        """
        Perform the migration from source to target database.

        Args:
            source: Source engine kind and connection string
            destination: Destination engine kind and connection string
            copy_selection: Optional restriction to some schemas and tables

        Returns:
            FailureManifest: The tables that failed; empty when every table migrated

        Raises:
            ConnectivityFailure: If either database cannot be reached
            DiscoveryFailure: If a catalog query against the source fails
        """
        manifest = FailureManifest()
        pipeline = self.pipelines.get((source.kind, destination.kind))
        if pipeline is None:
            logger.error(f"No migration pipeline from {source.kind.value} to {destination.kind.value}")
            return manifest
        if source.kind != self.source_adapter.kind or destination.kind != self.target_adapter.kind:
            raise ValueError(
                f"Descriptors ({source.kind.value} -> {destination.kind.value}) do not match "
                f"the configured adapters ({self.source_type} -> {self.target_type})"
            )

        logger.info(f"Starting migration from {self.source_type} to {self.target_type}")
        selection = copy_selection or CopySelection()
        self.source_adapter.configure(self.options)
        self.target_adapter.configure(self.options)

        try:
            self._connect(self.source_adapter, source, "source")
            self._connect(self.target_adapter, destination, "target")
            self._migrate_schemas(pipeline, selection, manifest)
        finally:
            self.source_adapter.disconnect()
            self.target_adapter.disconnect()

        if manifest.is_empty():
            logger.info(f"Migration from {self.source_type} to {self.target_type} completed successfully")
        else:
            logger.error(f"Migration from {self.source_type} to {self.target_type} finished with {len(manifest)} failed tables")
        return manifest

    def _connect(self, adapter: SQLDBAdapter, descriptor: EngineDescriptor, role: str) -> None:
        logger.info(f"Connecting to {role} ({descriptor.kind.value})")
        if not adapter.connect(descriptor.connection_string):
            raise ConnectivityFailure(f"Failed to connect to {role} database ({descriptor.kind.value})")
        self.progress.on_progress("connect", f"{role} {descriptor.kind.value} connected")

    def _migrate_schemas(self, pipeline: Pipeline, selection: CopySelection, manifest: FailureManifest) -> None:
        discoverer = SchemaDiscoverer(self.source_adapter)
        generator = DDLGenerator(self.target_adapter.dialect, pipeline.direction, self.type_mapper)
        isolation = FailureIsolation(manifest)

        schemas = [schema for schema in discoverer.list_schemas() if selection.includes_schema(schema.name)]
        self.progress.on_progress("discovery", f"{len(schemas)} schemas to migrate")

        migrated = 0
        for schema in schemas:
            tables = [
                table for table in discoverer.list_tables(schema.name)
                if selection.includes_table(schema.name, table.name)
            ]
            destination_schema = schema.name + self.options.schema_suffix
            self.progress.on_progress("schema", f"{schema.name} -> {destination_schema}: {len(tables)} tables")

            try:
                self.target_adapter.execute_ddl(generator.create_schema_statement(destination_schema))
            except DDLFailure as e:
                # the schema's tables have nowhere to go
                for table in tables:
                    isolation.fail(schema.name, table.name, STAGE_DDL, e)
                continue

            for table in tables:
                result = isolation.run(
                    schema.name,
                    table.name,
                    lambda tracker, table=table: self._migrate_table(
                        discoverer, generator, table, destination_schema, tracker
                    ),
                )
                if result.succeeded:
                    migrated += 1
                self.progress.on_progress("table", str(result))

        self.progress.on_progress("complete", f"{migrated} tables migrated, {len(manifest)} failed")

    def _migrate_table(self,
                       discoverer: SchemaDiscoverer,
                       generator: DDLGenerator,
                       table: TableDescriptor,
                       destination_schema: str,
                       tracker: StageTracker) -> int:
        columns = discoverer.list_columns(table.schema, table.name)
        definition = generator.table_definition(destination_schema, table.name, columns)
        self.target_adapter.execute_ddl(definition.statement)

        tracker.enter(STAGE_TRANSFER)
        rows_copied = self.transfer_engine.transfer(self.source_adapter, self.target_adapter, table, definition)
        logger.debug(f"Copied {rows_copied} rows into {destination_schema}.{table.name}")
        return rows_copied
