"""PostgreSQL dialect."""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from strata.migrations.dialects.base import Dialect, end_implicit_transaction, run_sql

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection


# One round trip; CASCADE takes dependent views and FKs with the tables
DROP_ALL_TABLES_SQL = """
    DO $$ DECLARE
        r RECORD;
    BEGIN
        FOR r IN (SELECT tablename FROM pg_tables WHERE schemaname = current_schema()) LOOP
            EXECUTE 'DROP TABLE IF EXISTS ' || quote_ident(r.tablename) || ' CASCADE';
        END LOOP;
    END $$;
"""


class PostgreSQLDialect(Dialect):
    """
    PostgreSQL.

    Key differences:
    - SERIAL for auto-increment (type-level, not keyword)
    - TIMESTAMP WITH TIME ZONE
    - Numbered placeholders ($1, $2, ...) as asyncpg expects
    - Transactional DDL: a failed migration leaves no trace
    - libpq's sslmode is spelled ssl for asyncpg
    """

    name = "postgresql"
    display_name = "PostgreSQL"

    driver = "asyncpg"
    url_schemes = ("postgresql", "postgres")

    def placeholder(self, position: int) -> str:
        return f"${position}"

    def history_table_sql(self, table_name: str) -> str:
        return f"""
            CREATE TABLE IF NOT EXISTS {self.quote(table_name)} (
                id SERIAL PRIMARY KEY,
                version VARCHAR(255) NOT NULL UNIQUE,
                name VARCHAR(255) NOT NULL,
                batch INTEGER NOT NULL,
                applied_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
            )
        """

    def list_tables_sql(self) -> str:
        return "SELECT tablename FROM pg_tables WHERE schemaname = current_schema()"

    async def drop_all_tables(self, conn: "AsyncConnection") -> None:
        await end_implicit_transaction(conn)
        async with conn.begin():
            await run_sql(conn, DROP_ALL_TABLES_SQL)

    def create_table_template(self, table_name: str) -> str:
        return f"""CREATE TABLE {table_name} (
    id SERIAL PRIMARY KEY,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
);"""

    def async_url(self, url: str) -> str:
        # libpq's "postgres://" alias is not a SQLAlchemy dialect name
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
        elif "://" not in url and "=" in url:
            url = _keyvalue_to_url(url)

        url = super().async_url(url)
        if url.startswith(f"{self.name}+{self.driver}://"):
            url = _sslmode_to_ssl(url)
        return url


def _keyvalue_to_url(dsn: str) -> str:
    """Turn ``host=h port=5432 user=u password=p dbname=d`` into a URL."""
    params = dict(
        part.split("=", 1) for part in dsn.split() if "=" in part
    )
    auth = quote(params.get("user", ""), safe="")
    if params.get("password"):
        auth += ":" + quote(params["password"], safe="")
    netloc = params.get("host", "localhost")
    if params.get("port"):
        netloc += f":{params['port']}"
    if auth:
        netloc = f"{auth}@{netloc}"
    url = f"postgresql://{netloc}/{params.get('dbname', '')}"
    if params.get("sslmode"):
        url += f"?sslmode={params['sslmode']}"
    return url


def _sslmode_to_ssl(url: str) -> str:
    """
    Rename the libpq ``sslmode`` query option to asyncpg's ``ssl``.

    asyncpg takes the same mode names (disable, require, verify-full, ...)
    but rejects ``sslmode`` as an unknown keyword.
    """
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    if not any(key == "sslmode" for key, _ in query):
        return url
    query = [("ssl" if key == "sslmode" else key, value) for key, value in query]
    return urlunsplit(parts._replace(query=urlencode(query)))
