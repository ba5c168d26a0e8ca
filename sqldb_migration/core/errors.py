"""
Migration error hierarchy

Fatal errors (connectivity, catalog discovery) stop the whole run. Every other
MigrationError is isolated to the table being migrated and recorded in the
failure manifest.
"""


class MigrationError(Exception):
    """Base class for all migration errors."""

    fatal = False


class ConnectivityFailure(MigrationError):
    """Raised when the source or destination database cannot be reached."""

    fatal = True


class DiscoveryFailure(MigrationError):
    """Raised when a catalog query against the source fails."""

    fatal = True


class DDLFailure(MigrationError):
    """Raised when the destination rejects a CREATE SCHEMA / CREATE TABLE."""


class TransferFailure(MigrationError):
    """Raised when reading, encoding or writing table rows fails."""


class UnsupportedValueTypeError(TransferFailure):
    """Raised when a buffered column holds a value type with no wire encoding."""

    def __init__(self, column_name, value_type):
        self.column_name = column_name
        self.value_type = value_type
        type_name = getattr(value_type, "__qualname__", repr(value_type))
        super().__init__(f"No wire type for column '{column_name}' of type {type_name}")


class DataIntegrityError(MigrationError):
    """Raised when discovered metadata is unusable, e.g. a table without columns."""
