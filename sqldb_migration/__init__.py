"""
SQL Database Migration Library

A library for migrating relational schemas and table data between different SQL database systems.

Currently supported databases:
- Microsoft SQL Server (mssql)
- PostgreSQL (psql)
"""

from sqldb_migration.core import SQLDBAdapter, DBMigrator
from sqldb_migration.adapters import ADAPTERS, list_adapters, get_adapter

__version__ = "0.1.0"

__all__ = [
    "SQLDBAdapter",
    "DBMigrator",
    "ADAPTERS",
    "list_adapters",
    "get_adapter",
]

def run_migration(config_file, verbose=False):
    """
    Run a migration using a configuration file.

    This is a convenience function that can be imported directly from the package.

    Args:
        config_file: Path to the configuration JSON file
        verbose: Whether to enable verbose logging

    Returns:
        bool: True if every table migrated, False otherwise
    """
    from sqldb_migration.cli.migrate import run_migration as _run_migration
    return _run_migration(config_file, verbose)
