"""
Command-line interface for SQL database migration

This module provides a CLI for the SQL database migration tool, allowing users to configure
and execute migrations between SQL Server and PostgreSQL.
"""

import sys
import json
import logging
import argparse
from typing import Dict, Any

from sqldb_migration.adapters import ADAPTERS
from sqldb_migration.core.errors import MigrationError
from sqldb_migration.core.isolation import FailureManifest
from sqldb_migration.core.migrator import DBMigrator
from sqldb_migration.core.models import CopySelection, EngineDescriptor, EngineKind, MigrationOptions


# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)


def load_config(config_file: str) -> Dict[str, Any]:
    """Load and validate the migration configuration from a JSON file.

    The ``target`` key is accepted as an alias for ``destination``.

    Args:
        config_file: Path to the configuration file

    Returns:
        Dict[str, Any]: The configuration, with the destination under ``destination``

    Raises:
        ValueError: If the configuration is invalid
    """
    try:
        with open(config_file, 'r') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Error parsing config file: {e}")
    except FileNotFoundError:
        raise ValueError(f"Config file not found: {config_file}")

    if not isinstance(config, dict):
        raise ValueError("Config file must contain a JSON object")

    if "destination" not in config and "target" in config:
        config["destination"] = config.pop("target")

    # Basic validation
    for key in ("source", "destination"):
        if key not in config:
            raise ValueError(f"Missing required key '{key}' in config file")
        if not isinstance(config[key], dict):
            raise ValueError(f"'{key}' configuration must be a JSON object")

        for field in ("type", "connection_string"):
            if field not in config[key]:
                raise ValueError(f"Missing '{field}' in {key} configuration")

        db_type = config[key]["type"]
        if db_type not in ADAPTERS:
            valid_types = ", ".join(ADAPTERS.keys())
            raise ValueError(f"Unsupported {key} database type: {db_type}. Valid types: {valid_types}")

    copy_selection = config.get("copy_selection") or {}
    if not isinstance(copy_selection, dict):
        raise ValueError("'copy_selection' must be a JSON object")
    entries = copy_selection.get("entries") or []
    if not isinstance(entries, list):
        raise ValueError("'copy_selection.entries' must be a list")
    for entry in entries:
        if not isinstance(entry, dict) or "schema" not in entry:
            raise ValueError("Every copy_selection entry needs a 'schema'")

    return config


def report_failures(manifest: FailureManifest) -> None:
    """Log one line per failed table."""
    for result in manifest:
        logger.error(f"  {result.schema}.{result.table} ({result.stage}): {result.reason}")


def run_migration(config_file: str, verbose: bool = False) -> bool:
    """Run a SQL database migration using the specified config.

    Args:
        config_file: Path to the configuration file
        verbose: Whether to enable verbose logging

    Returns:
        bool: True if every table was migrated, False otherwise
    """
    # Set up logging level
    if verbose:
        logging.getLogger('sqldb_migration').setLevel(logging.DEBUG)

    try:
        # Load and validate configuration
        logger.info(f"Loading configuration from {config_file}")
        config = load_config(config_file)
        options = MigrationOptions.from_dict(config.get("options"))
        copy_selection = CopySelection.from_dict(config.get("copy_selection"))

        source_type = config["source"]["type"]
        target_type = config["destination"]["type"]
        source = EngineDescriptor(EngineKind(source_type), config["source"]["connection_string"])
        destination = EngineDescriptor(EngineKind(target_type), config["destination"]["connection_string"])

        # Create and run the migrator
        migrator = DBMigrator(
            adapters_registry=ADAPTERS,
            source_type=source_type,
            target_type=target_type,
            options=options
        )
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return False

    try:
        manifest = migrator.migrate(source, destination, copy_selection)
    except MigrationError as e:
        logger.error(f"Migration aborted: {e}")
        return False
    except Exception as e:
        logger.error(f"Migration failed with unexpected error: {e}", exc_info=True)
        return False

    if manifest.is_empty():
        logger.info("Migration completed successfully!")
        return True

    logger.error(f"Migration finished with {len(manifest)} failed tables:")
    report_failures(manifest)
    return False


def main(argv=None):
    """Main entry point for the command-line interface."""
    parser = argparse.ArgumentParser(
        description="SQL Database Migration Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Basic migration with config file
  python -m sqldb_migration --config path/to/config.json

  # With verbose logging
  python -m sqldb_migration --config path/to/config.json --verbose

Config file format:
  {
    "source": {
      "type": "mssql",
      "connection_string": "DRIVER={ODBC Driver 18 for SQL Server};SERVER=localhost,1433;DATABASE=sales;UID=sa;PWD=password;TrustServerCertificate=yes"
    },
    "destination": {
      "type": "psql",
      "connection_string": "host=localhost dbname=sales user=postgres password=password"
    },
    "options": {
      "schema_suffix": "",
      "bulk_copy_timeout": 300,
      "batch_size": 1000
    },
    "copy_selection": {
      "enabled": true,
      "entries": [{"schema": "sales", "tables": ["orders"]}]
    }
  }
        """
    )

    parser.add_argument(
        "--config",
        help="Path to the migration configuration JSON file"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version information and exit"
    )

    args = parser.parse_args(argv)

    if args.version:
        from sqldb_migration import __version__
        print(f"sqldb_migration version {__version__}")
        return 0

    if not args.config:
        parser.error("the following arguments are required: --config")

    success = run_migration(
        config_file=args.config,
        verbose=args.verbose
    )

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
