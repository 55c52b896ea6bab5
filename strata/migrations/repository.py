"""
Migration file discovery.

Files follow the naming convention ``{YYYYMMDDHHmmss}_{name}.sql``:

    20240115103000_create_users_table.sql
    20240116090000_add_email_to_users.sql

The directory is scanned non-recursively; anything else in it (READMEs,
editor backups, subdirectories) is ignored.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from strata.exceptions import DiscoveryError
from strata.migrations.migration import Migration

logger = logging.getLogger("strata.migrations")


class MigrationRepository:
    """
    Reads the migrations directory.

    Example:
        >>> repository = MigrationRepository(Path("./migrations"))
        >>> repository.discover()
        [Migration(version='20240115103000', name='create_users_table', ...)]
    """

    MIGRATION_PATTERN = re.compile(r"^(\d{14})_(.+)\.(sql)$")

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def discover(self) -> list[Migration]:
        """
        Return every migration file, sorted by version ascending.

        A missing directory means "no migrations". Files sharing a version
        are all returned (ordered by name) with a warning; the history
        table's unique constraint rejects the second one at apply time.

        Raises:
            DiscoveryError: If the directory exists but cannot be read
        """
        if not self.path.exists():
            logger.debug(f"Migrations directory {self.path} does not exist")
            return []

        try:
            entries = list(self.path.iterdir())
        except OSError as e:
            raise DiscoveryError(
                f"Cannot read migrations directory {self.path}: {e}",
                path=str(self.path),
            ) from e

        migrations: list[Migration] = []
        for file_path in entries:
            match = self.MIGRATION_PATTERN.match(file_path.name)
            if not match or not file_path.is_file():
                logger.debug(f"Skipping {file_path.name}: not a migration file")
                continue

            version, name, _ext = match.groups()
            migrations.append(Migration(version=version, name=name, filename=file_path))

        migrations.sort(key=lambda m: m.sort_key)
        self._warn_duplicates(migrations)
        return migrations

    def path_for(self, version: str, name: str) -> Path:
        """Path of the file a history row was applied from."""
        return self.path / f"{version}_{name}.sql"

    def _warn_duplicates(self, migrations: list[Migration]) -> None:
        seen: dict[str, str] = {}
        for migration in migrations:
            if migration.version in seen:
                logger.warning(
                    f"Duplicate migration version {migration.version}: "
                    f"{seen[migration.version]} and {migration.identifier}"
                )
            else:
                seen[migration.version] = migration.identifier


__all__ = ["MigrationRepository"]
