"""
Batch-based SQL schema migrations.

Features:
- Plain .sql migration files with -- @up / -- @down sections
- Batches: every migrate run is one batch, rolled back as a unit
- rollback, rollback by batch or by step, reset, refresh, fresh, status
- Multi-dialect: SQLite, PostgreSQL, MySQL/MariaDB (via dialect adapters)
- One transaction per migration
"""

from strata.migrations.engine import Migrator
from strata.migrations.migration import (
    Direction,
    Migration,
    MigrationStatus,
    MigratorConfig,
)
from strata.migrations.repository import MigrationRepository
from strata.migrations.state import HistoryTracker
from strata.migrations.executor import MigrationExecutor
from strata.migrations.parser import extract_section, split_statements
from strata.migrations.templates import create_migration_file
from strata.migrations.dialects import (
    detect_dialect,
    get_dialect,
    register_dialect,
)
from strata.migrations.dialects.base import Dialect

__all__ = [
    # Engine
    "Migrator",
    "MigratorConfig",

    # Types
    "Direction",
    "Migration",
    "MigrationStatus",

    # Components
    "MigrationRepository",
    "HistoryTracker",
    "MigrationExecutor",
    "extract_section",
    "split_statements",
    "create_migration_file",

    # Dialects
    "Dialect",
    "detect_dialect",
    "get_dialect",
    "register_dialect",
]
