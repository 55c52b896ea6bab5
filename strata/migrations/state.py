"""
Migration history table.

One row per applied migration:

    id | version        | name               | batch | applied_at
    ---+----------------+--------------------+-------+--------------------
     1 | 20240115103000 | create_users_table |     1 | 2024-01-15 10:31:02
     2 | 20240116090000 | add_email_to_users |     2 | 2024-01-16 09:00:40

The tracker never begins or commits a transaction: every method runs on
the connection it is given, so recording a migration lands in the same
transaction as the migration's own SQL.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from strata.datetime import parse_timestamp
from strata.exceptions import HistoryTableError
from strata.migrations.dialects.base import run_sql
from strata.migrations.migration import Migration

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection

    from strata.migrations.dialects.base import Dialect

logger = logging.getLogger("strata.migrations")


class HistoryTracker:
    """
    Reads and writes the history table through one dialect.

    Example:
        tracker = HistoryTracker(get_dialect("sqlite"), "strata_migrations")
        await tracker.ensure_table(conn)
        batch = await tracker.next_batch(conn)
    """

    def __init__(self, dialect: "Dialect", table_name: str) -> None:
        self.dialect = dialect
        self.table_name = table_name

    async def ensure_table(self, conn: "AsyncConnection") -> None:
        """Create the history table if it does not exist."""
        try:
            await run_sql(conn, self.dialect.history_table_sql(self.table_name))
        except SQLAlchemyError as e:
            raise HistoryTableError(
                f"Failed to create migrations table {self.table_name}: {e}",
                table=self.table_name,
            ) from e
        logger.debug(f"History table {self.table_name} ready")

    async def applied(self, conn: "AsyncConnection") -> list[Migration]:
        """All applied migrations, version ascending."""
        result = await run_sql(conn, self.dialect.applied_sql(self.table_name))
        return [self._row_to_migration(row) for row in result.fetchall()]

    async def next_batch(self, conn: "AsyncConnection") -> int:
        """Highest batch + 1, or 1 on an empty table."""
        result = await run_sql(conn, self.dialect.next_batch_sql(self.table_name))
        return int(result.scalar() or 1)

    async def last_batch(self, conn: "AsyncConnection") -> int:
        """Highest batch, or 0 on an empty table."""
        result = await run_sql(conn, self.dialect.last_batch_sql(self.table_name))
        return int(result.scalar() or 0)

    async def in_batch(self, conn: "AsyncConnection", batch: int) -> list[Migration]:
        """Migrations of one batch, version descending."""
        result = await run_sql(
            conn,
            self.dialect.batch_select_sql(self.table_name),
            (batch,),
        )
        return [self._row_to_migration(row) for row in result.fetchall()]

    async def latest(self, conn: "AsyncConnection", count: int) -> list[Migration]:
        """The ``count`` newest migrations across batches, version descending."""
        result = await run_sql(
            conn,
            self.dialect.latest_select_sql(self.table_name),
            (count,),
        )
        return [self._row_to_migration(row) for row in result.fetchall()]

    async def record(self, conn: "AsyncConnection", migration: Migration, batch: int) -> None:
        """Insert the history row for an applied migration."""
        await run_sql(
            conn,
            self.dialect.insert_sql(self.table_name),
            (migration.version, migration.name, batch),
        )

    async def unrecord(self, conn: "AsyncConnection", migration: Migration) -> None:
        """Delete the history row of a rolled back migration."""
        await run_sql(
            conn,
            self.dialect.delete_sql(self.table_name),
            (migration.version,),
        )

    def _row_to_migration(self, row: Any) -> Migration:
        version, name, batch, applied_at = row
        return Migration(
            version=str(version),
            name=name,
            batch=int(batch),
            applied_at=parse_timestamp(applied_at),
        )


__all__ = ["HistoryTracker"]
