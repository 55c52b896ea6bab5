"""
Abstract base class for dialects.

Each database family (SQLite, PostgreSQL, MySQL) implements this
interface. A Migrator picks one dialect when it is constructed and hands
it to every collaborator, so nothing downstream branches on the
database name.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from sqlalchemy.engine import CursorResult
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


# cursor.execute(sql) with no parameter collection, so drivers never try
# to interpolate "%" or ":name" found in author-written SQL
RAW_SQL = {"no_parameters": True}


async def run_sql(
    conn: "AsyncConnection",
    statement: str,
    parameters: Sequence[Any] | None = None,
) -> "CursorResult[Any]":
    """
    Send one statement to the driver as written.

    Positional ``parameters`` must use the dialect's placeholders.
    """
    if parameters is None:
        return await conn.exec_driver_sql(statement, execution_options=RAW_SQL)
    return await conn.exec_driver_sql(statement, tuple(parameters))


async def end_implicit_transaction(conn: "AsyncConnection") -> None:
    """
    Commit the transaction SQLAlchemy autobegins for plain reads.

    Callers that need a transaction of their own (conn.begin()) call this
    first; reads never leave pending writes behind.
    """
    if conn.in_transaction():
        await conn.commit()


class Dialect(ABC):
    """
    Abstract base for dialect-specific SQL.

    Subclass this (and call register_dialect()) to add support for a new
    database engine.
    """

    # ── Identity ──────────────────────────────────────────────────────
    name: str = "unknown"
    display_name: str = "Unknown"

    # Async DB-API driver used through SQLAlchemy
    driver: str = ""

    # URL schemes (before "+driver://" or "://") detect_dialect() maps to this dialect
    url_schemes: tuple[str, ...] = ()

    # ── Quoting & placeholders ────────────────────────────────────────

    def quote(self, identifier: str) -> str:
        """Quote a table or column name."""
        return f'"{identifier}"'

    @abstractmethod
    def placeholder(self, position: int) -> str:
        """Return the positional placeholder for the 1-based ``position``."""
        ...

    def placeholders(self, count: int) -> str:
        """Return ``count`` comma-separated placeholders."""
        return ", ".join(self.placeholder(i) for i in range(1, count + 1))

    # ── History table ─────────────────────────────────────────────────

    @abstractmethod
    def history_table_sql(self, table_name: str) -> str:
        """Return CREATE TABLE IF NOT EXISTS SQL for the history table."""
        ...

    def applied_sql(self, table_name: str) -> str:
        return (
            f"SELECT version, name, batch, applied_at "
            f"FROM {self.quote(table_name)} ORDER BY version ASC"
        )

    def insert_sql(self, table_name: str) -> str:
        return (
            f"INSERT INTO {self.quote(table_name)} (version, name, batch) "
            f"VALUES ({self.placeholders(3)})"
        )

    def delete_sql(self, table_name: str) -> str:
        return f"DELETE FROM {self.quote(table_name)} WHERE version = {self.placeholder(1)}"

    def batch_select_sql(self, table_name: str) -> str:
        """Rows of one batch, newest first (reverse of application order)."""
        return (
            f"SELECT version, name, batch, applied_at FROM {self.quote(table_name)} "
            f"WHERE batch = {self.placeholder(1)} ORDER BY version DESC"
        )

    def latest_select_sql(self, table_name: str) -> str:
        """The N newest rows across all batches."""
        return (
            f"SELECT version, name, batch, applied_at FROM {self.quote(table_name)} "
            f"ORDER BY version DESC LIMIT {self.placeholder(1)}"
        )

    def next_batch_sql(self, table_name: str) -> str:
        return f"SELECT COALESCE(MAX(batch), 0) + 1 FROM {self.quote(table_name)}"

    def last_batch_sql(self, table_name: str) -> str:
        return f"SELECT COALESCE(MAX(batch), 0) FROM {self.quote(table_name)}"

    # ── Database info / destructive ───────────────────────────────────

    @abstractmethod
    def list_tables_sql(self) -> str:
        """Return SQL listing user tables of the current schema/database."""
        ...

    @abstractmethod
    async def drop_all_tables(self, conn: "AsyncConnection") -> None:
        """
        Drop every user table, the history table included.

        Runs against the connection it is given and leaves no transaction
        open when it returns.
        """
        ...

    # ── Templates ─────────────────────────────────────────────────────

    @abstractmethod
    def create_table_template(self, table_name: str) -> str:
        """Return a CREATE TABLE statement with id, created_at, updated_at."""
        ...

    # ── Engine ────────────────────────────────────────────────────────

    def prepare_engine(self, engine: "AsyncEngine") -> None:
        """Hook called once on a freshly created engine, before connecting."""
        return None

    # ── URLs ──────────────────────────────────────────────────────────

    def async_url(self, url: str) -> str:
        """
        Rewrite a plain URL to the SQLAlchemy async form.

        ``postgres://u@h/db`` becomes ``postgresql+asyncpg://u@h/db``; a URL
        that already names a driver (``scheme+driver://``) is left alone.
        """
        scheme, sep, rest = url.partition("://")
        if not sep or "+" in scheme:
            return url
        return f"{self.name}+{self.driver}://{rest}"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.name})>"
