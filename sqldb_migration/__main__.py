"""
Entry point for the sqldb_migration package when run as a module.

Usage:
    python -m sqldb_migration --config path/to/config.json [--verbose]
"""

import sys

from sqldb_migration.cli import main

if __name__ == "__main__":
    sys.exit(main())
