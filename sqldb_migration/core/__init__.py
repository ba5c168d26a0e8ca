"""
Core functionality for sqldb_migration

This module provides the core classes and functions for the relational database migration framework.
"""

from sqldb_migration.core.adapter import SQLDBAdapter
from sqldb_migration.core.errors import (
    ConnectivityFailure,
    DataIntegrityError,
    DDLFailure,
    DiscoveryFailure,
    MigrationError,
    TransferFailure,
    UnsupportedValueTypeError,
)
from sqldb_migration.core.isolation import FailureManifest
from sqldb_migration.core.migrator import DBMigrator, LoggingProgressObserver, ProgressObserver
from sqldb_migration.core.models import CopySelection, EngineDescriptor, EngineKind, MigrationOptions

__all__ = [
    'SQLDBAdapter',
    'DBMigrator',
    'ProgressObserver',
    'LoggingProgressObserver',
    'FailureManifest',
    'CopySelection',
    'EngineDescriptor',
    'EngineKind',
    'MigrationOptions',
    'MigrationError',
    'ConnectivityFailure',
    'DiscoveryFailure',
    'DDLFailure',
    'TransferFailure',
    'UnsupportedValueTypeError',
    'DataIntegrityError',
]
