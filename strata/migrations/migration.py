"""
Migration value types.

A migration is one ``{version}_{name}.sql`` file holding an ``-- @up``
and a ``-- @down`` section. The same type describes a history row once
it has been applied (``batch`` > 0).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from strata.datetime import VERSION_LENGTH, timezone


DEFAULT_MIGRATIONS_DIR = "./migrations"
DEFAULT_TABLE_NAME = "strata_migrations"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Direction(str, Enum):
    """Which section of a migration file runs."""

    UP = "up"
    DOWN = "down"


@dataclass
class Migration:
    """
    One migration file, or one row of the history table.

    Example:
        20240115103000_create_users_table.sql
        -> Migration(version="20240115103000", name="create_users_table")
    """

    # YYYYMMDDHHmmss, the only ordering key
    version: str
    name: str
    filename: Path | None = None

    # 0 while pending
    batch: int = 0
    applied_at: datetime | None = None

    def __post_init__(self) -> None:
        if len(self.version) != VERSION_LENGTH or not self.version.isdigit():
            raise ValueError(
                f"Invalid migration version {self.version!r}: "
                f"expected {VERSION_LENGTH} digits (YYYYMMDDHHmmss)"
            )

    @property
    def identifier(self) -> str:
        """``{version}_{name}``, the file stem."""
        return f"{self.version}_{self.name}"

    @property
    def timestamp(self) -> datetime:
        """The version parsed back into a (naive, UTC) datetime."""
        return timezone.parse_version(self.version)

    @property
    def is_applied(self) -> bool:
        return self.batch > 0

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.version, self.name)

    def __str__(self) -> str:
        return self.identifier


@dataclass
class MigrationStatus:
    """Pending/ran flag for one discovered migration. Never persisted."""

    migration: Migration
    pending: bool
    ran: bool

    @property
    def batch(self) -> int:
        return self.migration.batch

    @property
    def applied_at(self) -> datetime | None:
        return self.migration.applied_at


class MigratorConfig(BaseModel):
    """
    Explicit configuration for one Migrator.

    Example:
        config = MigratorConfig(
            database_url="postgres://localhost/app",
            migrations_dir="./database/migrations",
        )
        config.dialect  # "postgresql", detected from the URL
    """

    model_config = ConfigDict(frozen=True)

    database_url: str | None = None
    migrations_dir: Path = Path(DEFAULT_MIGRATIONS_DIR)
    table_name: str = DEFAULT_TABLE_NAME
    dialect: str | None = None

    @field_validator("table_name")
    @classmethod
    def _validate_table_name(cls, value: str) -> str:
        # Interpolated into SQL, so only plain identifiers are accepted
        if not _IDENTIFIER.match(value):
            raise ValueError(
                f"Invalid history table name {value!r}: "
                "use letters, digits and underscores only"
            )
        return value

    @model_validator(mode="before")
    @classmethod
    def _detect_dialect(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("dialect") and data.get("database_url"):
            from strata.migrations.dialects import detect_dialect

            data = {**data, "dialect": detect_dialect(data["database_url"])}
        return data


__all__ = [
    "DEFAULT_MIGRATIONS_DIR",
    "DEFAULT_TABLE_NAME",
    "Direction",
    "Migration",
    "MigrationStatus",
    "MigratorConfig",
]
