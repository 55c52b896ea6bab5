"""
Runs one migration in one transaction.

The migration's statements and its history-table write commit together
or not at all. On PostgreSQL and SQLite a failed migration therefore
leaves neither schema changes nor a history row behind. MySQL commits
DDL implicitly, so statements that ran before the failing one stay.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from strata.exceptions import MigrationExecutionError, MissingSectionError
from strata.migrations.dialects.base import end_implicit_transaction, run_sql
from strata.migrations.migration import Direction, Migration
from strata.migrations.parser import extract_section, split_statements

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection

    from strata.migrations.state import HistoryTracker

logger = logging.getLogger("strata.migrations")


class MigrationExecutor:
    """
    Applies or reverts a single migration.

    Example:
        executor = MigrationExecutor(conn, tracker)
        await executor.run(migration, batch=3, direction=Direction.UP)
    """

    def __init__(self, conn: "AsyncConnection", tracker: "HistoryTracker") -> None:
        self.conn = conn
        self.tracker = tracker

    async def run(
        self,
        migration: Migration,
        batch: int,
        direction: Direction | str,
    ) -> int:
        """
        Execute one direction of ``migration`` and update the history table.

        Args:
            migration: Migration with ``filename`` set
            batch: Batch number recorded on the way up (ignored going down)
            direction: Direction.UP or Direction.DOWN

        Returns:
            Number of statements executed

        Raises:
            MissingSectionError: If the file has no SQL for ``direction``
            MigrationExecutionError: If the file cannot be read or any
                statement fails (the transaction is rolled back)
        """
        direction = Direction(direction)
        content = self._read(migration, direction)

        # Comment-only sections count as empty
        statements = split_statements(extract_section(content, direction))
        if not statements:
            raise MissingSectionError(
                f"no SQL in the -- @{direction.value} section",
                migration=migration.identifier,
                direction=direction.value,
            )

        await end_implicit_transaction(self.conn)
        try:
            async with self.conn.begin():
                for statement in statements:
                    await run_sql(self.conn, statement)

                if direction is Direction.UP:
                    await self.tracker.record(self.conn, migration, batch)
                else:
                    await self.tracker.unrecord(self.conn, migration)
        except SQLAlchemyError as e:
            reason = e.orig if isinstance(e, DBAPIError) and e.orig is not None else e
            raise MigrationExecutionError(
                str(reason),
                migration=migration.identifier,
                direction=direction.value,
            ) from e

        logger.debug(
            f"{migration.identifier} ({direction.value}): "
            f"{len(statements)} statement(s) committed"
        )
        return len(statements)

    def _read(self, migration: Migration, direction: Direction) -> str:
        if migration.filename is None:
            raise MigrationExecutionError(
                "migration file path is unknown",
                migration=migration.identifier,
                direction=direction.value,
            )
        try:
            return migration.filename.read_text(encoding="utf-8")
        except OSError as e:
            raise MigrationExecutionError(
                f"cannot read {migration.filename}: {e}",
                migration=migration.identifier,
                direction=direction.value,
            ) from e


__all__ = ["MigrationExecutor"]
