"""
Shared test fixtures.
"""

from pathlib import Path

import pytest
import pytest_asyncio

import strata.config
from strata.migrations import Migrator, MigratorConfig
from strata.migrations.dialects.base import run_sql


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Each test starts without loaded settings and away from any real .env."""
    monkeypatch.setattr(strata.config, "_settings", None)
    monkeypatch.setattr(strata.config, "_settings_class", strata.config.Settings)
    for var in ("DATABASE_URL", "DIALECT", "MIGRATIONS_DIR", "MIGRATIONS_TABLE", "ENVIRONMENT"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def migrations_dir(tmp_path) -> Path:
    path = tmp_path / "migrations"
    path.mkdir()
    return path


@pytest.fixture
def database_url(tmp_path) -> str:
    """File-backed SQLite; VACUUM and reconnects behave like a real database."""
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def write_migration(migrations_dir):
    """Write a migration file: write_migration(version, name, up, down)."""

    def _write(
        version: str,
        name: str,
        up: str | None = None,
        down: str | None = None,
        content: str | None = None,
    ) -> Path:
        if content is None:
            content = f"-- @up\n{up or ''}\n\n-- @down\n{down or ''}\n"
        path = migrations_dir / f"{version}_{name}.sql"
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest_asyncio.fixture
async def migrator(migrations_dir, database_url):
    """A connected Migrator on an empty SQLite database."""
    migrator = Migrator(MigratorConfig(database_url=database_url, migrations_dir=migrations_dir))
    await migrator.connect()
    try:
        yield migrator
    finally:
        await migrator.close()


async def table_names(migrator: Migrator) -> set[str]:
    """User tables currently in the migrator's database."""
    result = await run_sql(migrator._connection(), migrator.dialect.list_tables_sql())
    return {row[0] for row in result.fetchall()}


async def history_rows(migrator: Migrator) -> list[tuple[str, int]]:
    """(version, batch) of every history row, version ascending."""
    return [(m.version, m.batch) for m in await migrator.applied()]


@pytest.fixture
def tables():
    return table_names


@pytest.fixture
def history():
    return history_rows
