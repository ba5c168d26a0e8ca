"""
Relational database adapters package

This package contains adapters for the supported database engines.
"""

from sqldb_migration.adapters.mssql import MssqlAdapter
from sqldb_migration.adapters.postgres import PostgresAdapter

# Registry of available adapters
ADAPTERS = {
    "mssql": MssqlAdapter,
    "psql": PostgresAdapter,
}


def list_adapters():
    """Return a list of available adapter names."""
    return list(ADAPTERS.keys())


def get_adapter(adapter_name):
    """Get an adapter class by name.

    Args:
        adapter_name: Name of the adapter.

    Returns:
        The adapter class or None if not found.
    """
    return ADAPTERS.get(adapter_name.lower())
