"""
Dialect adapters for the migration engine.

Each database family (SQLite, PostgreSQL, MySQL) has one adapter that
owns every piece of SQL whose spelling differs between engines: history
table DDL, placeholders, drop-all and the create-table template.

Usage:
    from strata.migrations.dialects import detect_dialect, get_dialect

    dialect = get_dialect(detect_dialect("postgres://localhost/app"))
    sql = dialect.history_table_sql("strata_migrations")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from strata.migrations.dialects.base import Dialect

logger = logging.getLogger("strata.migrations")


_DIALECTS: dict[str, type["Dialect"]] = {}

# Other spellings of the built-in names
_ALIASES = {
    "postgres": "postgresql",
    "pgsql": "postgresql",
    "mariadb": "mysql",
    "sqlite3": "sqlite",
}

FALLBACK_DIALECT = "mysql"


def register_dialect(name: str, dialect_class: type["Dialect"]) -> None:
    """Register a dialect adapter."""
    _load_builtin_dialects()
    _DIALECTS[name] = dialect_class


def _load_builtin_dialects() -> None:
    # Lazy-load built-in adapters on first call
    if _DIALECTS:
        return

    from strata.migrations.dialects.mysql import MySQLDialect
    from strata.migrations.dialects.postgresql import PostgreSQLDialect
    from strata.migrations.dialects.sqlite import SQLiteDialect

    _DIALECTS["sqlite"] = SQLiteDialect
    _DIALECTS["postgresql"] = PostgreSQLDialect
    _DIALECTS["mysql"] = MySQLDialect


def available_dialects() -> list[str]:
    """Return the registered dialect names."""
    _load_builtin_dialects()
    return sorted(_DIALECTS)


def get_dialect(name: str | None) -> "Dialect":
    """
    Get an adapter instance for the given dialect name.

    Unknown names never fail: they fall back to the MySQL adapter and
    log a warning. An unset (None or empty) name is the MySQL default
    without a warning.

    Args:
        name: Dialect name (sqlite, postgresql, mysql or an alias)

    Returns:
        Dialect instance
    """
    _load_builtin_dialects()

    key = (name or "").strip().lower()
    if not key:
        return _DIALECTS[FALLBACK_DIALECT]()
    key = _ALIASES.get(key, key)

    dialect_class = _DIALECTS.get(key)
    if dialect_class is None:
        logger.warning(
            f"Unknown dialect {name!r}, falling back to {FALLBACK_DIALECT}. "
            f"Available: {', '.join(available_dialects())}."
        )
        dialect_class = _DIALECTS[FALLBACK_DIALECT]
    return dialect_class()


def detect_dialect(database_url: str) -> str:
    """
    Detect the dialect name from a connection URL or DSN.

    Args:
        database_url: Plain or SQLAlchemy URL, MySQL DSN, SQLite path or
            PostgreSQL key/value string

    Returns:
        Dialect name; "mysql" when nothing matches

    Examples:
        >>> detect_dialect("postgres://localhost/db")
        'postgresql'
        >>> detect_dialect("root:secret@tcp(127.0.0.1:3306)/app")
        'mysql'
        >>> detect_dialect("./data/app.sqlite3")
        'sqlite'
        >>> detect_dialect("host=localhost dbname=app")
        'postgresql'
    """
    _load_builtin_dialects()

    url = database_url.strip().lower()
    scheme = url.split("://", 1)[0].split("+", 1)[0] if "://" in url else ""
    if url.startswith("file:"):
        scheme = "file"

    if scheme:
        for name, dialect_class in _DIALECTS.items():
            if scheme in dialect_class.url_schemes:
                return name

    # MySQL DSN: user:pass@tcp(host:port)/dbname
    if "@tcp(" in url or "@unix(" in url:
        return "mysql"

    if url.endswith((".db", ".sqlite", ".sqlite3")) or url == ":memory:":
        return "sqlite"

    # libpq key/value connection string
    if "host=" in url and "dbname=" in url:
        return "postgresql"

    return FALLBACK_DIALECT


__all__ = [
    "available_dialects",
    "detect_dialect",
    "get_dialect",
    "register_dialect",
]
