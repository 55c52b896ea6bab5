"""SQLite dialect."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import event

from strata.migrations.dialects.base import Dialect, end_implicit_transaction, run_sql

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

logger = logging.getLogger("strata.migrations")


class SQLiteDialect(Dialect):
    """
    SQLite.

    Key differences:
    - AUTOINCREMENT only allowed on INTEGER PRIMARY KEY
    - DATETIME values come back as text
    - qmark placeholders (?)
    - pysqlite/aiosqlite never BEGIN before DDL on their own; the engine
      is switched to explicit BEGIN so DDL is transactional
    """

    name = "sqlite"
    display_name = "SQLite"

    driver = "aiosqlite"
    url_schemes = ("sqlite", "sqlite3", "file")

    def placeholder(self, position: int) -> str:
        return "?"

    def history_table_sql(self, table_name: str) -> str:
        return f"""
            CREATE TABLE IF NOT EXISTS {self.quote(table_name)} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                version VARCHAR(255) NOT NULL UNIQUE,
                name VARCHAR(255) NOT NULL,
                batch INTEGER NOT NULL,
                applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """

    def list_tables_sql(self) -> str:
        return (
            "SELECT name FROM sqlite_master "
            "WHERE type='table' AND name NOT LIKE 'sqlite_%'"
        )

    async def drop_all_tables(self, conn: "AsyncConnection") -> None:
        await end_implicit_transaction(conn)

        # PRAGMA foreign_keys and VACUUM are no-ops / errors inside a
        # transaction, so they go straight to the driver connection
        raw = await conn.get_raw_connection()
        driver_conn = raw.driver_connection

        async with driver_conn.execute("PRAGMA foreign_keys") as cursor:
            row = await cursor.fetchone()
        foreign_keys = bool(row and row[0])

        await driver_conn.execute("PRAGMA foreign_keys = OFF")
        try:
            async with conn.begin():
                result = await run_sql(conn, self.list_tables_sql())
                tables = [row[0] for row in result.fetchall()]
                for table in tables:
                    logger.debug(f"Dropping table {table}")
                    await run_sql(conn, f"DROP TABLE IF EXISTS {self.quote(table)}")
        finally:
            if foreign_keys:
                await driver_conn.execute("PRAGMA foreign_keys = ON")

        await driver_conn.execute("VACUUM")

    def create_table_template(self, table_name: str) -> str:
        return f"""CREATE TABLE {table_name} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);"""

    def prepare_engine(self, engine: "AsyncEngine") -> None:
        # SQLAlchemy's recipe for SQLite transactional DDL: turn off the
        # driver's own transaction handling and emit BEGIN ourselves
        @event.listens_for(engine.sync_engine, "connect")
        def _disable_driver_transactions(dbapi_connection: Any, connection_record: Any) -> None:
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _emit_begin(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN")

    def async_url(self, url: str) -> str:
        """
        Accept the spellings people actually use for SQLite.

        ``sqlite:///app.db`` and ``sqlite+aiosqlite:///app.db`` are
        SQLAlchemy URLs already; ``sqlite://app.db``, ``file:app.db``,
        ``app.db`` and ``:memory:`` are rewritten.
        """
        if url in ("", ":memory:", "sqlite://", "sqlite3://"):
            return f"{self.name}+{self.driver}://"

        scheme, sep, rest = url.partition("://")
        if sep and "+" in scheme:
            return url

        if url.startswith("file:"):
            path = url[len("file:"):].partition("?")[0]
            if path.startswith("//"):
                # file:///abs/app.db
                path = path[2:]
        elif sep:
            # sqlite:///rel.db keeps its three slashes; sqlite://rel.db has
            # the path in the host position
            path = rest[1:] if rest.startswith("/") else rest
        else:
            path = url

        return f"{self.name}+{self.driver}:///{path}"
