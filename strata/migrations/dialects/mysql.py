"""MySQL / MariaDB dialect."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from strata.migrations.dialects.base import Dialect, end_implicit_transaction, run_sql

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection

logger = logging.getLogger("strata.migrations")

# DSN form: user:pass@tcp(host:port)/dbname?params or user:pass@unix(/path.sock)/dbname
_DSN = re.compile(r"^(?P<auth>[^@]*)@(?P<protocol>tcp|unix)\((?P<address>[^)]*)\)/(?P<database>[^?]*)(?:\?(?P<query>.*))?$")


class MySQLDialect(Dialect):
    """
    MySQL / MariaDB.

    Also the fallback for unknown dialects.

    Key differences:
    - AUTO_INCREMENT keyword, InnoDB utf8mb4 tables
    - DATETIME timestamps
    - Backtick quoting
    - "format" placeholders (%s), the DB-API style aiomysql accepts
    - DDL commits implicitly: a migration that fails after a successful
      CREATE/ALTER keeps that statement's effect
    """

    name = "mysql"
    display_name = "MySQL"

    driver = "aiomysql"
    url_schemes = ("mysql", "mariadb")

    def quote(self, identifier: str) -> str:
        return f"`{identifier}`"

    def placeholder(self, position: int) -> str:
        return "%s"

    def history_table_sql(self, table_name: str) -> str:
        return f"""
            CREATE TABLE IF NOT EXISTS {self.quote(table_name)} (
                id INT AUTO_INCREMENT PRIMARY KEY,
                version VARCHAR(255) NOT NULL UNIQUE,
                name VARCHAR(255) NOT NULL,
                batch INT NOT NULL,
                applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
        """

    def list_tables_sql(self) -> str:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = DATABASE() AND table_type = 'BASE TABLE'"
        )

    async def drop_all_tables(self, conn: "AsyncConnection") -> None:
        await end_implicit_transaction(conn)
        async with conn.begin():
            await run_sql(conn, "SET FOREIGN_KEY_CHECKS = 0")
            try:
                result = await run_sql(conn, self.list_tables_sql())
                tables = [row[0] for row in result.fetchall()]
                for table in tables:
                    logger.debug(f"Dropping table {table}")
                    await run_sql(conn, f"DROP TABLE IF EXISTS {self.quote(table)}")
            finally:
                await run_sql(conn, "SET FOREIGN_KEY_CHECKS = 1")

    def create_table_template(self, table_name: str) -> str:
        return f"""CREATE TABLE {table_name} (
    id INT AUTO_INCREMENT PRIMARY KEY,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP
) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;"""

    def async_url(self, url: str) -> str:
        match = _DSN.match(url)
        if match:
            query: list[str] = []
            if match.group("protocol") == "tcp":
                host = match.group("address") or "localhost"
            else:
                host = "localhost"
                query.append(f"unix_socket={match.group('address')}")

            # parseTime and similar DSN options mean nothing to aiomysql; keep only charset
            charset = re.search(r"(?:^|&)charset=([^&]+)", match.group("query") or "")
            if charset:
                query.append(f"charset={charset.group(1)}")

            url = f"mysql://{match.group('auth')}@{host}/{match.group('database')}"
            if query:
                url += "?" + "&".join(query)
        elif url.startswith("mariadb://"):
            url = "mysql://" + url[len("mariadb://"):]
        return super().async_url(url)
