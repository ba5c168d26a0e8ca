"""
Basic tests for the core functionality of the sqldb_migration package.

This module tests the migrator, the failure isolation and the bulk transfer
engine, and ensures they work together properly using in-memory fake adapters.
"""

import datetime
import unittest
from unittest.mock import MagicMock

from sqldb_migration.adapters.pg_binary import COPY_SIGNATURE, encode_copy_stream
from sqldb_migration.core.adapter import SQLDBAdapter
from sqldb_migration.core.ddl import TableDefinition
from sqldb_migration.core.dialects import DIALECTS
from sqldb_migration.core.errors import (
    ConnectivityFailure,
    DataIntegrityError,
    DDLFailure,
    DiscoveryFailure,
    TransferFailure,
)
from sqldb_migration.core.isolation import FailureIsolation, FailureManifest
from sqldb_migration.core.migrator import PIPELINES, DBMigrator, ProgressObserver
from sqldb_migration.core.models import (
    ColumnDescriptor,
    CopySelection,
    CopySelectionEntry,
    EngineDescriptor,
    EngineKind,
    MigrationOptions,
    RowBuffer,
    TableDescriptor,
    TableResult,
)
from sqldb_migration.core.transfer import BulkTransferEngine
from sqldb_migration.core.type_mapping import Direction


class FakeAdapter(SQLDBAdapter):
    """An in-memory adapter answering the discovery queries from a table dict."""

    def __init__(self):
        super().__init__()
        self.tables = {}
        self.extra_schemas = []
        self.connect_result = True
        self.connected = False
        self.disconnect_calls = 0
        self.executed = []
        self.loaded = {}
        self.fail_ddl = set()
        self.fail_columns = False

    def add_table(self, schema, table, columns, declared, rows):
        buffer = RowBuffer.from_declared([column.name for column in columns], declared, rows)
        self.tables[(schema, table)] = (columns, buffer)

    def connect(self, connection_string):
        self.connection_string = connection_string
        self.connected = self.connect_result
        return self.connect_result

    def disconnect(self):
        self.connected = False
        self.disconnect_calls += 1

    def fetch_all(self, query, params=()):
        if "information_schema.schemata" in query:
            names = sorted({schema for schema, _ in self.tables} | set(self.extra_schemas))
            return [(name,) for name in names]
        if "information_schema.tables" in query:
            return [(table,) for schema, table in sorted(self.tables) if schema == params[0]]
        if "information_schema.columns" in query:
            if self.fail_columns:
                raise Exception("catalog unavailable")
            columns, _ = self.tables.get(tuple(params), ([], None))
            return [(c.name, c.source_type_name, c.max_length, c.precision, c.scale) for c in columns]
        raise AssertionError(f"Unexpected query: {query}")

    def execute_ddl(self, statement):
        for marker in self.fail_ddl:
            if marker in statement:
                raise DDLFailure(f"rejected: {statement}")
        self.executed.append(statement)

    def read_table(self, schema, table):
        return self.tables[(schema, table)][1]

    def bulk_load(self, schema, table, columns, buffer):
        self.loaded[(schema, table)] = (list(columns), list(buffer.rows))
        return len(buffer)


class FakeMssqlAdapter(FakeAdapter):
    kind = EngineKind.MSSQL
    dialect = DIALECTS[EngineKind.MSSQL]


class FakePostgresAdapter(FakeAdapter):
    """Encodes every load with the real binary COPY encoder."""

    kind = EngineKind.PSQL
    dialect = DIALECTS[EngineKind.PSQL]

    def __init__(self):
        super().__init__()
        self.streams = {}

    def bulk_load(self, schema, table, columns, buffer):
        self.streams[(schema, table)] = encode_copy_stream(buffer).getvalue()
        return super().bulk_load(schema, table, columns, buffer)


FAKE_ADAPTERS = {
    "mssql": FakeMssqlAdapter,
    "psql": FakePostgresAdapter,
}

MSSQL = EngineDescriptor(EngineKind.MSSQL, "DRIVER={ODBC Driver 18 for SQL Server};SERVER=src")
PSQL = EngineDescriptor(EngineKind.PSQL, "host=dst dbname=app")

ORDER_COLUMNS = [
    ColumnDescriptor("id", "int", precision=10, scale=0),
    ColumnDescriptor("customer", "nvarchar", max_length=50),
    ColumnDescriptor("placed_at", "datetime2"),
]
ORDER_DECLARED = [(int, 4), (str, None), (datetime.datetime, None)]


def order_rows(count):
    return [
        (i, f"customer {i}", datetime.datetime(2024, 1, 1) + datetime.timedelta(hours=i))
        for i in range(1, count + 1)
    ]


class RecordingObserver(ProgressObserver):
    def __init__(self):
        self.events = []

    def on_progress(self, stage, detail):
        self.events.append((stage, detail))


class TestMigratorInitialization(unittest.TestCase):
    """Tests for building a migrator from the adapter registry."""

    def test_migrator_initialization(self):
        """Test that the migrator initializes correctly with valid adapter types."""
        migrator = DBMigrator(FAKE_ADAPTERS, "mssql", "psql")

        self.assertIsInstance(migrator.source_adapter, FakeMssqlAdapter)
        self.assertIsInstance(migrator.target_adapter, FakePostgresAdapter)
        self.assertEqual(migrator.source_type, "mssql")
        self.assertEqual(migrator.target_type, "psql")
        self.assertEqual(migrator.options, MigrationOptions())

    def test_migrator_initialization_invalid_type(self):
        """Test that the migrator raises ValueError for invalid adapter types."""
        with self.assertRaises(ValueError):
            DBMigrator(FAKE_ADAPTERS, "mssql", "oracle")

        with self.assertRaises(ValueError):
            DBMigrator(FAKE_ADAPTERS, "mysql", "psql")

    def test_pipelines(self):
        self.assertEqual(len(PIPELINES), 3)
        self.assertEqual(PIPELINES[(EngineKind.MSSQL, EngineKind.PSQL)].direction, Direction.MSSQL_TO_PSQL)
        self.assertEqual(PIPELINES[(EngineKind.PSQL, EngineKind.MSSQL)].direction, Direction.PSQL_TO_MSSQL)
        self.assertIsNone(PIPELINES[(EngineKind.MSSQL, EngineKind.MSSQL)].direction)
        self.assertNotIn((EngineKind.PSQL, EngineKind.PSQL), PIPELINES)


class TestMigratorMigrate(unittest.TestCase):
    """Tests for the migration flow."""

    def _migrator(self, source_type="mssql", target_type="psql", **kwargs):
        migrator = DBMigrator(FAKE_ADAPTERS, source_type, target_type, **kwargs)
        return migrator, migrator.source_adapter, migrator.target_adapter

    def test_sales_orders_end_to_end(self):
        """Test migrating sales.orders with 10 rows from SQL Server to PostgreSQL."""
        migrator, source, target = self._migrator()
        # the date column is datetime2: SQL Server's own "timestamp" type is
        # rowversion and maps to bytea, not to a PostgreSQL timestamp
        columns = ORDER_COLUMNS + [ColumnDescriptor("note", "nvarchar", max_length=200)]
        declared = ORDER_DECLARED + [(str, None)]
        source_rows = [row + (f"note {row[0]}",) for row in order_rows(9)]
        source_rows.append((10, "customer 10", datetime.datetime(2024, 1, 2), None))
        source.add_table("sales", "orders", columns, declared, source_rows)

        manifest = migrator.migrate(MSSQL, PSQL)

        self.assertTrue(manifest.is_empty())
        self.assertEqual(
            target.executed,
            [
                'CREATE SCHEMA IF NOT EXISTS "sales"',
                'CREATE TABLE "sales"."orders" '
                '("id" integer, "customer" text, "placed_at" timestamp, "note" text)',
            ],
        )
        loaded_columns, rows = target.loaded[("sales", "orders")]
        self.assertEqual(loaded_columns, ["id", "customer", "placed_at", "note"])
        self.assertEqual(rows, source_rows)
        stream = target.streams[("sales", "orders")]
        self.assertTrue(stream.startswith(COPY_SIGNATURE))
        # last row's NULL note is a -1 field length, followed by the -1 trailer
        self.assertTrue(stream.endswith(b"\xff\xff\xff\xff" + b"\xff\xff"))
        self.assertEqual(source.connection_string, MSSQL.connection_string)
        self.assertEqual(target.connection_string, PSQL.connection_string)
        self.assertEqual(source.disconnect_calls, 1)
        self.assertEqual(target.disconnect_calls, 1)

    def test_failed_table_is_isolated(self):
        """Test that T2 failing DDL does not stop T1 and T3."""
        migrator, source, target = self._migrator()
        for name in ("T1", "T2", "T3"):
            source.add_table("sales", name, ORDER_COLUMNS, ORDER_DECLARED, order_rows(2))
        target.fail_ddl.add('"sales"."T2"')

        manifest = migrator.migrate(MSSQL, PSQL)

        self.assertEqual(len(manifest), 1)
        failure = manifest.failures[0]
        self.assertEqual((failure.schema, failure.table, failure.stage), ("sales", "T2", "ddl"))
        self.assertIsInstance(failure.error, DDLFailure)
        self.assertEqual(sorted(target.loaded), [("sales", "T1"), ("sales", "T3")])

    def test_transfer_failure_is_isolated(self):
        migrator, source, target = self._migrator()
        source.add_table("sales", "orders", ORDER_COLUMNS, ORDER_DECLARED, order_rows(1))
        source.add_table("sales", "notes", [ColumnDescriptor("body", "nvarchar")], [(object, None)], [("x",)])

        manifest = migrator.migrate(MSSQL, PSQL)

        self.assertEqual([(r.table, r.stage) for r in manifest], [("notes", "transfer")])
        self.assertIsInstance(manifest.failures[0].error, TransferFailure)
        self.assertIn(("sales", "orders"), target.loaded)

    def test_table_without_columns_is_isolated(self):
        migrator, source, target = self._migrator()
        source.add_table("sales", "orders", ORDER_COLUMNS, ORDER_DECLARED, order_rows(1))
        source.tables[("sales", "empty")] = ([], RowBuffer(columns=[]))

        manifest = migrator.migrate(MSSQL, PSQL)

        self.assertEqual(len(manifest), 1)
        self.assertIsInstance(manifest.failures[0].error, DataIntegrityError)
        self.assertEqual(manifest.failures[0].stage, "ddl")

    def test_schema_ddl_failure_fails_its_tables(self):
        migrator, source, target = self._migrator()
        source.add_table("hr", "staff", ORDER_COLUMNS, ORDER_DECLARED, order_rows(1))
        source.add_table("sales", "orders", ORDER_COLUMNS, ORDER_DECLARED, order_rows(1))
        source.add_table("sales", "returns", ORDER_COLUMNS, ORDER_DECLARED, order_rows(1))
        target.fail_ddl.add('CREATE SCHEMA IF NOT EXISTS "sales"')

        manifest = migrator.migrate(MSSQL, PSQL)

        self.assertEqual([(r.schema, r.table, r.stage) for r in manifest],
                         [("sales", "orders", "ddl"), ("sales", "returns", "ddl")])
        self.assertEqual(list(target.loaded), [("hr", "staff")])

    def test_connectivity_failure_is_fatal(self):
        """Test that a failed connect stops the run before any DDL."""
        migrator, source, target = self._migrator()
        source.add_table("sales", "orders", ORDER_COLUMNS, ORDER_DECLARED, order_rows(1))
        target.connect_result = False

        with self.assertRaises(ConnectivityFailure):
            migrator.migrate(MSSQL, PSQL)

        self.assertEqual(target.executed, [])
        self.assertEqual(source.disconnect_calls, 1)
        self.assertEqual(target.disconnect_calls, 1)

    def test_discovery_failure_is_fatal(self):
        migrator, source, target = self._migrator()
        source.add_table("sales", "orders", ORDER_COLUMNS, ORDER_DECLARED, order_rows(1))
        source.fail_columns = True

        with self.assertRaises(DiscoveryFailure):
            migrator.migrate(MSSQL, PSQL)

        self.assertEqual(target.loaded, {})
        self.assertEqual(target.disconnect_calls, 1)

    def test_same_engine_copies_types_verbatim(self):
        migrator, source, target = self._migrator("mssql", "mssql")
        source.add_table("sales", "orders", ORDER_COLUMNS, ORDER_DECLARED, order_rows(3))

        manifest = migrator.migrate(MSSQL, EngineDescriptor(EngineKind.MSSQL, "SERVER=dst"))

        self.assertTrue(manifest.is_empty())
        self.assertIn(
            "CREATE TABLE [sales].[orders] ([id] int, [customer] nvarchar(50), [placed_at] datetime2)",
            target.executed,
        )

    def test_psql_to_mssql(self):
        migrator, source, target = self._migrator("psql", "mssql")
        columns = [ColumnDescriptor("id", "integer"), ColumnDescriptor("unit price", "numeric")]
        source.add_table("public", "items", columns, [(int, 4), (object, None)], [(1, None)])
        source.extra_schemas = ["pg_catalog", "information_schema"]

        manifest = migrator.migrate(PSQL, MSSQL)

        self.assertTrue(manifest.is_empty())
        self.assertEqual(
            target.executed,
            [
                "IF SCHEMA_ID(N'public') IS NULL EXEC(N'CREATE SCHEMA [public]')",
                "CREATE TABLE [public].[items] ([id] INT, [unit_price] DECIMAL(38, 10))",
            ],
        )
        self.assertEqual(target.loaded[("public", "items")], (["id", "unit_price"], [(1, None)]))

    def test_copy_selection(self):
        migrator, source, target = self._migrator()
        source.add_table("hr", "staff", ORDER_COLUMNS, ORDER_DECLARED, order_rows(1))
        source.add_table("sales", "customers", ORDER_COLUMNS, ORDER_DECLARED, order_rows(1))
        source.add_table("sales", "orders", ORDER_COLUMNS, ORDER_DECLARED, order_rows(1))
        selection = CopySelection(enabled=True, entries=(CopySelectionEntry("sales", ("orders",)),))

        manifest = migrator.migrate(MSSQL, PSQL, selection)

        self.assertTrue(manifest.is_empty())
        self.assertEqual(list(target.loaded), [("sales", "orders")])
        self.assertNotIn('CREATE SCHEMA IF NOT EXISTS "hr"', target.executed)

    def test_schema_suffix_and_options(self):
        options = MigrationOptions(schema_suffix="_new", bulk_copy_timeout=30, batch_size=10)
        migrator, source, target = self._migrator(options=options)
        source.add_table("sales", "orders", ORDER_COLUMNS, ORDER_DECLARED, order_rows(2))

        migrator.migrate(MSSQL, PSQL)

        self.assertEqual(target.executed[0], 'CREATE SCHEMA IF NOT EXISTS "sales_new"')
        self.assertIn(("sales_new", "orders"), target.loaded)
        self.assertIs(source.options, options)
        self.assertIs(target.options, options)

    def test_missing_pipeline(self):
        migrator, source, target = self._migrator(pipelines={})

        with self.assertLogs("sqldb_migration.core.migrator", level="ERROR"):
            manifest = migrator.migrate(MSSQL, PSQL)

        self.assertTrue(manifest.is_empty())
        self.assertFalse(hasattr(source, "connection_string"))
        self.assertEqual(target.disconnect_calls, 0)

    def test_postgres_to_postgres_is_a_no_op(self):
        migrator, source, target = self._migrator("psql", "psql")
        columns = [ColumnDescriptor("id", "integer"), ColumnDescriptor("tags", "ARRAY"),
                   ColumnDescriptor("created", "timestamp without time zone")]
        source.add_table("public", "events", columns, [(int, 4), (object, None), (datetime.datetime, None)],
                         [(1, None, datetime.datetime(2024, 1, 1))])

        with self.assertLogs("sqldb_migration.core.migrator", level="ERROR"):
            manifest = migrator.migrate(PSQL, PSQL)

        self.assertTrue(manifest.is_empty())
        self.assertFalse(hasattr(source, "connection_string"))
        self.assertFalse(hasattr(target, "connection_string"))
        self.assertEqual(target.executed, [])
        self.assertEqual(source.disconnect_calls, 0)

    def test_descriptor_mismatch(self):
        migrator, _, _ = self._migrator()
        with self.assertRaises(ValueError):
            migrator.migrate(PSQL, MSSQL)

    def test_progress_observer(self):
        observer = RecordingObserver()
        migrator, source, _ = self._migrator(progress=observer)
        source.add_table("sales", "orders", ORDER_COLUMNS, ORDER_DECLARED, order_rows(1))

        migrator.migrate(MSSQL, PSQL)

        stages = [stage for stage, _ in observer.events]
        self.assertEqual(stages, ["connect", "connect", "discovery", "schema", "table", "complete"])
        self.assertEqual(observer.events[-2][1], "[OK] sales.orders: 1 rows")


class TestFailureIsolation(unittest.TestCase):
    """Tests for the FailureIsolation and FailureManifest."""

    def test_success(self):
        manifest = FailureManifest()

        result = FailureIsolation(manifest).run("sales", "orders", lambda tracker: 7)

        self.assertTrue(result.succeeded)
        self.assertEqual(result.rows_copied, 7)
        self.assertTrue(manifest.is_empty())

    def test_failure_records_stage(self):
        manifest = FailureManifest()

        def step(tracker):
            tracker.enter("transfer")
            raise TransferFailure("COPY failed")

        with self.assertLogs("sqldb_migration.core.isolation", level="ERROR"):
            result = FailureIsolation(manifest).run("sales", "orders", step)

        self.assertFalse(result.succeeded)
        self.assertEqual(result.stage, "transfer")
        self.assertEqual(result.reason, "TransferFailure: COPY failed")
        self.assertEqual(list(manifest), [result])

    def test_unexpected_errors_are_isolated(self):
        manifest = FailureManifest()

        def step(tracker):
            raise KeyError("boom")

        result = FailureIsolation(manifest).run("sales", "orders", step)

        self.assertEqual(result.stage, "ddl")
        self.assertEqual(len(manifest), 1)

    def test_fatal_errors_propagate(self):
        manifest = FailureManifest()

        def step(tracker):
            raise DiscoveryFailure("catalog gone")

        with self.assertRaises(DiscoveryFailure):
            FailureIsolation(manifest).run("sales", "orders", step)
        self.assertTrue(manifest.is_empty())

    def test_manifest_rejects_success(self):
        with self.assertRaises(ValueError):
            FailureManifest().record(TableResult("sales", "orders", rows_copied=1))

    def test_manifest_failures_is_a_copy(self):
        manifest = FailureManifest()
        manifest.record(TableResult("sales", "orders", stage="ddl", error=DDLFailure("x")))
        manifest.failures.clear()
        self.assertEqual(len(manifest), 1)


class TestBulkTransferEngine(unittest.TestCase):
    """Tests for the BulkTransferEngine."""

    def _definition(self, names):
        return TableDefinition("sales", "orders", tuple((name, "text") for name in names), "CREATE TABLE ...")

    def test_transfer(self):
        source = MagicMock()
        destination = MagicMock()
        buffer = RowBuffer.from_declared(["a", "b c"], [(str, None), (str, None)], [("x", "y")])
        source.read_table.return_value = buffer
        destination.bulk_load.return_value = 1

        rows = BulkTransferEngine().transfer(
            source, destination, TableDescriptor("sales", "orders"), self._definition(["a", "b_c"])
        )

        self.assertEqual(rows, 1)
        source.read_table.assert_called_once_with("sales", "orders")
        destination.bulk_load.assert_called_once_with("sales", "orders", ["a", "b_c"], buffer)

    def test_column_count_mismatch(self):
        source = MagicMock()
        destination = MagicMock()
        source.read_table.return_value = RowBuffer.from_declared(["a"], [(str, None)], [("x",)])

        with self.assertRaises(TransferFailure):
            BulkTransferEngine().transfer(
                source, destination, TableDescriptor("sales", "orders"), self._definition(["a", "b"])
            )
        destination.bulk_load.assert_not_called()


if __name__ == "__main__":
    unittest.main()
