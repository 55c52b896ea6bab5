"""
Migration file generator.

    strata make create_users_table --create

writes ``migrations/20240115103000_create_users_table.sql``:

    -- strata migration
    -- Table: users
    -- Dialect: SQLite

    -- @up
    CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        ...
    );

    -- @down
    DROP TABLE IF EXISTS users;
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from strata.datetime import timezone
from strata.exceptions import TemplateError

if TYPE_CHECKING:
    from strata.migrations.dialects.base import Dialect

logger = logging.getLogger("strata.migrations")


TABLE_TEMPLATE = """-- strata migration
-- Table: {table}
-- Dialect: {dialect}

-- @up
{create_table}

-- @down
DROP TABLE IF EXISTS {table};
"""

BLANK_TEMPLATE = """-- strata migration: {name}
-- Created: {created}

-- @up
-- Add your forward migration SQL here

-- @down
-- Add your rollback migration SQL here
"""


def slugify(name: str) -> str:
    """``"Add Email To Users"`` -> ``"add_email_to_users"``; each space becomes one underscore."""
    return name.strip().lower().replace(" ", "_")


def table_name_from(slug: str) -> str:
    """``create_users_table`` -> ``users``."""
    table = slug
    if table.startswith("create_"):
        table = table[len("create_"):]
    if table.endswith("_table"):
        table = table[: -len("_table")]
    return table


def render_migration(
    name: str,
    dialect: "Dialect",
    create_table: bool = False,
    now: datetime | None = None,
) -> str:
    """Return the text of a new migration file."""
    slug = slugify(name)
    if create_table:
        table = table_name_from(slug)
        return TABLE_TEMPLATE.format(
            table=table,
            dialect=dialect.display_name,
            create_table=dialect.create_table_template(table),
        )
    return BLANK_TEMPLATE.format(
        name=slug,
        created=timezone.format(now or timezone.now()),
    )


def create_migration_file(
    directory: str | Path,
    name: str,
    dialect: "Dialect",
    create_table: bool = False,
    now: datetime | None = None,
) -> Path:
    """
    Write a new ``{version}_{slug}.sql`` file and return its path.

    Args:
        directory: Migrations directory (created when missing)
        name: Free-form name; lowercased, spaces become underscores
        dialect: Dialect whose CREATE TABLE syntax the template uses
        create_table: Emit a CREATE TABLE / DROP TABLE pair instead of
            an empty skeleton
        now: Clock override (tests); defaults to the current UTC time

    Raises:
        TemplateError: If the name is empty, the file already exists or
            cannot be written
    """
    slug = slugify(name)
    if not slug:
        raise TemplateError("Migration name cannot be empty")

    now = now or timezone.now()
    directory = Path(directory)
    path = directory / f"{timezone.version(now)}_{slug}.sql"
    content = render_migration(slug, dialect, create_table=create_table, now=now)

    try:
        directory.mkdir(parents=True, exist_ok=True)
        # "x": never overwrite a migration created in the same second
        with path.open("x", encoding="utf-8") as f:
            f.write(content)
    except FileExistsError as e:
        raise TemplateError(f"Migration file already exists: {path}") from e
    except OSError as e:
        raise TemplateError(f"Cannot write migration file {path}: {e}") from e

    logger.info(f"Created migration {path}")
    return path


__all__ = [
    "BLANK_TEMPLATE",
    "TABLE_TEMPLATE",
    "create_migration_file",
    "render_migration",
    "slugify",
    "table_name_from",
]
