"""
Migration engine.

Responsible for:
- Tracking applied migrations (history table, batches)
- Applying and reverting migrations, one transaction each
- Dropping and rebuilding the schema (fresh/refresh)
- Generating new migration files

Every operation runs on the single connection a Migrator holds, in order;
a Migrator must not be shared between concurrent tasks.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType
from typing import Any, Self

from sqlalchemy.exc import ArgumentError, NoSuchModuleError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from strata.exceptions import (
    ConfigurationError,
    MigrationConnectionError,
    MigrationExecutionError,
    NotConnectedError,
)
from strata.migrations.dialects import detect_dialect, get_dialect
from strata.migrations.dialects.base import Dialect, end_implicit_transaction, run_sql
from strata.migrations.executor import MigrationExecutor
from strata.migrations.migration import (
    Direction,
    Migration,
    MigrationStatus,
    MigratorConfig,
)
from strata.migrations.repository import MigrationRepository
from strata.migrations.state import HistoryTracker
from strata.migrations.templates import create_migration_file

logger = logging.getLogger("strata.migrations")


class Migrator:
    """
    Main migration engine.

    Usage:
        config = MigratorConfig(
            database_url="sqlite+aiosqlite:///./app.db",
            migrations_dir="./migrations",
        )

        async with Migrator(config) as migrator:
            # Apply everything pending, as one batch
            await migrator.migrate()

            # See what ran
            for entry in await migrator.status():
                print(entry.migration, entry.ran, entry.batch)

            # Undo the last batch
            await migrator.rollback()
    """

    def __init__(self, config: MigratorConfig | None = None, **options: Any) -> None:
        self.config = config or MigratorConfig(**options)
        self.migrations_dir = Path(self.config.migrations_dir)
        self.table_name = self.config.table_name
        self.repository = MigrationRepository(self.migrations_dir)
        self._set_dialect(get_dialect(self.config.dialect))

        self._engine: AsyncEngine | None = None
        self._conn: AsyncConnection | None = None
        self._table_ready = False

    def _set_dialect(self, dialect: Dialect) -> None:
        self.dialect = dialect
        self.tracker = HistoryTracker(dialect, self.table_name)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self, url: str | None = None) -> None:
        """
        Open the engine and the connection every operation uses.

        Args:
            url: Overrides ``config.database_url``. When the config has
                neither URL nor dialect, the dialect is detected from it.

        Raises:
            ConfigurationError: If no URL is available
            MigrationConnectionError: If the driver is missing or the
                database cannot be reached (no retry)
        """
        if self._conn is not None:
            return

        url = url or self.config.database_url
        if not url:
            raise ConfigurationError("No database URL configured (set DATABASE_URL)")

        if not self.config.dialect:
            self._set_dialect(get_dialect(detect_dialect(url)))

        try:
            engine = create_async_engine(self.dialect.async_url(url), echo=False)
        except (ArgumentError, NoSuchModuleError, ImportError) as e:
            raise MigrationConnectionError(
                f"Invalid database URL or missing {self.dialect.driver} driver: {e}"
            ) from e

        self.dialect.prepare_engine(engine)

        # Drivers raise their own types (TypeError for unknown URL options)
        try:
            conn = await engine.connect()
        except Exception as e:
            await engine.dispose()
            raise MigrationConnectionError(
                f"Cannot connect to {self.dialect.display_name}: {e}"
            ) from e

        try:
            await run_sql(conn, "SELECT 1")
            await end_implicit_transaction(conn)
        except Exception as e:
            await conn.close()
            await engine.dispose()
            raise MigrationConnectionError(
                f"{self.dialect.display_name} did not answer: {e}"
            ) from e

        self._engine = engine
        self._conn = conn
        self._table_ready = False
        logger.debug(f"Connected to {self.dialect.display_name}")

    async def close(self) -> None:
        """Close the connection and dispose of the engine."""
        conn, engine = self._conn, self._engine
        self._conn = None
        self._engine = None
        self._table_ready = False

        if conn is not None:
            await conn.close()
        if engine is not None:
            await engine.dispose()

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _connection(self) -> AsyncConnection:
        if self._conn is None:
            raise NotConnectedError()
        return self._conn

    async def ensure_history_table(self) -> None:
        """Create the history table if needed (once per connection)."""
        conn = self._connection()
        if self._table_ready:
            return

        await end_implicit_transaction(conn)
        async with conn.begin():
            await self.tracker.ensure_table(conn)
        self._table_ready = True

    async def _prepare(self) -> AsyncConnection:
        conn = self._connection()
        await self.ensure_history_table()
        return conn

    # =========================================================================
    # Reads
    # =========================================================================

    def discover(self) -> list[Migration]:
        """Migration files on disk, version ascending. No connection needed."""
        return self.repository.discover()

    async def applied(self) -> list[Migration]:
        """Applied migrations, version ascending, with their file paths."""
        conn = await self._prepare()
        migrations = await self.tracker.applied(conn)
        return [self._with_file(m) for m in migrations]

    async def pending(self) -> list[Migration]:
        """Discovered migrations whose version is not in the history table."""
        conn = await self._prepare()
        applied_versions = {m.version for m in await self.tracker.applied(conn)}
        return [m for m in self.discover() if m.version not in applied_versions]

    async def status(self) -> list[MigrationStatus]:
        """Pending/ran status of every discovered migration, version ascending."""
        conn = await self._prepare()
        history = {m.version: m for m in await self.tracker.applied(conn)}

        statuses = []
        for migration in self.discover():
            row = history.get(migration.version)
            if row is not None:
                migration.batch = row.batch
                migration.applied_at = row.applied_at
            statuses.append(
                MigrationStatus(migration=migration, pending=row is None, ran=row is not None)
            )
        return statuses

    # =========================================================================
    # Forward
    # =========================================================================

    async def migrate(self) -> int:
        """
        Apply every pending migration as one new batch.

        Returns:
            Number of migrations applied (0 when nothing is pending)

        Raises:
            MigrationExecutionError: On the first failure; ``completed``
                counts the migrations committed before it
        """
        return await self._migrate(limit=None)

    async def migrate_step(self, steps: int) -> int:
        """Apply at most ``steps`` pending migrations as one new batch."""
        if steps < 1:
            raise ValueError(f"steps must be at least 1, got {steps}")
        return await self._migrate(limit=steps)

    async def _migrate(self, limit: int | None) -> int:
        conn = await self._prepare()
        pending = await self.pending()
        if limit is not None:
            pending = pending[:limit]

        if not pending:
            logger.info("Nothing to migrate")
            return 0

        batch = await self.tracker.next_batch(conn)
        logger.info(f"Migrating {len(pending)} migration(s) in batch {batch}")
        return await self._run_all(pending, Direction.UP, batch)

    # =========================================================================
    # Backward
    # =========================================================================

    async def rollback(self) -> int:
        """Revert the most recent batch. Returns 0 when nothing was applied."""
        conn = await self._prepare()
        batch = await self.tracker.last_batch(conn)
        if batch == 0:
            logger.info("Nothing to rollback")
            return 0
        return await self.rollback_batch(batch)

    async def rollback_batch(self, batch: int) -> int:
        """Revert every migration of ``batch``, newest first."""
        conn = await self._prepare()
        migrations = await self.tracker.in_batch(conn, batch)
        if not migrations:
            logger.info(f"Nothing to rollback in batch {batch}")
            return 0

        logger.info(f"Rolling back batch {batch} ({len(migrations)} migration(s))")
        return await self._run_all(migrations, Direction.DOWN)

    async def rollback_step(self, steps: int) -> int:
        """Revert the ``steps`` newest migrations, whatever their batch."""
        if steps < 1:
            raise ValueError(f"steps must be at least 1, got {steps}")

        conn = await self._prepare()
        migrations = await self.tracker.latest(conn, steps)
        if not migrations:
            logger.info("Nothing to rollback")
            return 0

        logger.info(f"Rolling back {len(migrations)} migration(s)")
        return await self._run_all(migrations, Direction.DOWN)

    async def reset(self) -> int:
        """Revert every applied migration, newest first."""
        conn = await self._prepare()
        migrations = list(reversed(await self.tracker.applied(conn)))
        if not migrations:
            logger.info("Nothing to reset")
            return 0

        logger.info(f"Resetting {len(migrations)} migration(s)")
        return await self._run_all(migrations, Direction.DOWN)

    # =========================================================================
    # Rebuild
    # =========================================================================

    async def fresh(self) -> int:
        """
        Drop every table (history included), then run all migrations.

        Down sections are not used. Destructive: callers are expected to
        confirm first.
        """
        conn = self._connection()
        logger.warning(f"Dropping all tables ({self.dialect.display_name})")
        await self.dialect.drop_all_tables(conn)

        self._table_ready = False
        await self.ensure_history_table()
        return await self.migrate()

    async def refresh(self, steps: int | None = None) -> tuple[int, int]:
        """
        Roll back then migrate again.

        Args:
            steps: Roll back only the newest ``steps`` migrations instead
                of all of them

        Returns:
            (rolled back, migrated)
        """
        if steps is None:
            rolled_back = await self.reset()
        else:
            rolled_back = await self.rollback_step(steps)
        migrated = await self.migrate()
        return rolled_back, migrated

    # =========================================================================
    # Authoring
    # =========================================================================

    def create_migration(self, name: str, create_table: bool = False) -> Path:
        """Write a new migration file into the migrations directory."""
        return create_migration_file(
            self.migrations_dir,
            name,
            self.dialect,
            create_table=create_table,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _with_file(self, migration: Migration) -> Migration:
        if migration.filename is None:
            migration.filename = self.repository.path_for(migration.version, migration.name)
        return migration

    async def _run_all(
        self,
        migrations: list[Migration],
        direction: Direction,
        batch: int = 0,
    ) -> int:
        executor = MigrationExecutor(self._connection(), self.tracker)
        verb = "Migrated" if direction is Direction.UP else "Rolled back"

        completed = 0
        for migration in migrations:
            migration = self._with_file(migration)
            try:
                await executor.run(migration, batch, direction)
            except MigrationExecutionError as e:
                e.completed = completed
                raise
            completed += 1
            logger.info(f"{verb}: {migration.identifier}")

        return completed


__all__ = ["Migrator"]
