"""
strata - batch-based SQL schema migrations for PostgreSQL, MySQL and SQLite.

Migrations are plain .sql files; every `migrate` run is recorded as one
batch so a deploy can be rolled back as a unit.

    from strata import Migrator, MigratorConfig

    async with Migrator(MigratorConfig(database_url="sqlite:///app.db")) as migrator:
        await migrator.migrate()
"""

__version__ = "0.1.0"

from strata.config import Settings, get_settings, configure
from strata.datetime import timezone
from strata.exceptions import (
    StrataException,
    ConfigurationError,
    MigrationError,
    MigrationConnectionError,
    MigrationExecutionError,
    MissingSectionError,
)
from strata.migrations import (
    Direction,
    Migration,
    MigrationStatus,
    Migrator,
    MigratorConfig,
)

__all__ = [
    "__version__",

    # Config
    "Settings",
    "get_settings",
    "configure",

    # DateTime
    "timezone",

    # Exceptions
    "StrataException",
    "ConfigurationError",
    "MigrationError",
    "MigrationConnectionError",
    "MigrationExecutionError",
    "MissingSectionError",

    # Migrations
    "Direction",
    "Migration",
    "MigrationStatus",
    "Migrator",
    "MigratorConfig",
]
