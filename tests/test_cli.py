"""
Tests for the strata command line.

Commands run end to end against a file-backed SQLite database; each
asyncio.run() call opens and closes its own connection.
"""

import json

import pytest

from strata import __version__
from strata.migrations.cli import cli, create_parser


@pytest.fixture
def cli_env(monkeypatch, tmp_path, migrations_dir):
    """DATABASE_URL and MIGRATIONS_DIR set the way a deploy would set them."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'app.db'}")
    monkeypatch.setenv("MIGRATIONS_DIR", str(migrations_dir))
    return migrations_dir


@pytest.fixture
def two_migrations(cli_env, write_migration):
    write_migration(
        "20240101000000", "create_users",
        "CREATE TABLE users (id INTEGER PRIMARY KEY);",
        "DROP TABLE users;",
    )
    write_migration(
        "20240102000000", "create_posts",
        "CREATE TABLE posts (id INTEGER PRIMARY KEY);",
        "DROP TABLE posts;",
    )


def status_json(capsys) -> list[dict]:
    capsys.readouterr()
    assert cli(["status", "--json"]) == 0
    return json.loads(capsys.readouterr().out)


class TestParser:
    def test_version(self, capsys):
        assert cli(["--version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert cli([]) == 0
        assert "usage: strata" in capsys.readouterr().out

    def test_step_must_be_positive(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["migrate", "--step", "0"])

    def test_step_and_batch_are_exclusive(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["rollback", "--step", "1", "--batch", "1"])

    def test_common_options(self):
        args = create_parser().parse_args(
            ["status", "-d", "sqlite:///x.db", "-p", "db/migrations", "--table", "history"]
        )
        assert args.database == "sqlite:///x.db"
        assert args.path == "db/migrations"
        assert args.table == "history"
        assert args.force is False


class TestMake:
    def test_make_blank(self, cli_env, capsys):
        assert cli(["make", "add email to users", "--dialect", "sqlite"]) == 0

        (path,) = cli_env.iterdir()
        assert path.name.endswith("_add_email_to_users.sql")
        assert "Created migration" in capsys.readouterr().out

    def test_make_create_table(self, cli_env):
        assert cli(["make", "create_users_table", "--create"]) == 0

        (path,) = cli_env.iterdir()
        content = path.read_text(encoding="utf-8")
        assert "CREATE TABLE users" in content
        assert "-- Dialect: SQLite" in content

    def test_make_empty_name_fails(self, cli_env, capsys):
        assert cli(["make", " "]) == 1
        assert "✗" in capsys.readouterr().out


class TestMigrateAndStatus:
    def test_migrate(self, two_migrations, capsys):
        assert cli(["migrate"]) == 0
        assert "Migrated 2 migrations" in capsys.readouterr().out

        rows = status_json(capsys)
        assert [row["migration"] for row in rows] == [
            "20240101000000_create_users",
            "20240102000000_create_posts",
        ]
        assert all(row["ran"] and row["batch"] == 1 for row in rows)
        assert all(row["applied_at"] for row in rows)

    def test_nothing_to_migrate(self, cli_env, capsys):
        assert cli(["migrate"]) == 0
        assert "Nothing to migrate." in capsys.readouterr().out

    def test_migrate_step(self, two_migrations, capsys):
        assert cli(["migrate", "--step", "1"]) == 0
        rows = status_json(capsys)
        assert [row["ran"] for row in rows] == [True, False]
        assert rows[1]["batch"] is None

    def test_status_table(self, two_migrations, capsys):
        cli(["migrate", "--step", "1"])
        capsys.readouterr()

        assert cli(["status"]) == 0

        out = capsys.readouterr().out
        assert "[X]" in out and "[ ]" in out
        assert "1 ran, 1 pending" in out

    def test_status_without_migrations(self, cli_env, capsys):
        assert cli(["status"]) == 0
        assert "No migrations found." in capsys.readouterr().out

    def test_failure_reports_completed(self, cli_env, write_migration, capsys):
        write_migration("20240101000000", "ok", "CREATE TABLE a (id INTEGER);", "DROP TABLE a;")
        write_migration("20240102000000", "broken", "CREATE TABLE a (id INTEGER);", "SELECT 1;")

        assert cli(["migrate"]) == 1

        out = capsys.readouterr().out
        assert "20240102000000_broken" in out
        assert "1 migration completed before the failure" in out
        assert [row["ran"] for row in status_json(capsys)] == [True, False]

    def test_missing_database_url(self, monkeypatch, migrations_dir, capsys):
        assert cli(["migrate", "-p", str(migrations_dir)]) == 1
        assert "No database URL configured" in capsys.readouterr().out

    def test_invalid_table_option(self, cli_env, capsys):
        assert cli(["status", "--table", "bad name"]) == 1
        assert "Invalid configuration" in capsys.readouterr().out


class TestRollback:
    def test_rollback_last_batch(self, two_migrations, capsys):
        cli(["migrate"])
        capsys.readouterr()

        assert cli(["rollback"]) == 0

        assert "Rolled back 2 migrations" in capsys.readouterr().out
        assert not any(row["ran"] for row in status_json(capsys))

    def test_rollback_step(self, two_migrations, capsys):
        cli(["migrate"])
        assert cli(["rollback", "--step", "1"]) == 0
        assert [row["ran"] for row in status_json(capsys)] == [True, False]

    def test_rollback_batch(self, two_migrations, capsys):
        cli(["migrate", "--step", "1"])
        cli(["migrate"])
        assert cli(["rollback", "--batch", "1"]) == 0
        assert [row["ran"] for row in status_json(capsys)] == [False, True]

    def test_nothing_to_rollback(self, cli_env, capsys):
        assert cli(["rollback"]) == 0
        assert "Nothing to rollback." in capsys.readouterr().out

    def test_reset(self, two_migrations, capsys):
        cli(["migrate", "--step", "1"])
        cli(["migrate"])
        capsys.readouterr()

        assert cli(["reset"]) == 0

        assert "Rolled back 2 migrations" in capsys.readouterr().out
        assert not any(row["ran"] for row in status_json(capsys))

    def test_refresh(self, two_migrations, capsys):
        cli(["migrate"])
        capsys.readouterr()

        assert cli(["refresh"]) == 0

        assert "Rolled back 2 migrations, migrated 2 migrations" in capsys.readouterr().out
        assert all(row["batch"] == 1 for row in status_json(capsys))


class TestConfirmation:
    def test_fresh_asks_and_aborts(self, two_migrations, monkeypatch, capsys):
        cli(["migrate"])
        monkeypatch.setattr("builtins.input", lambda prompt: "n")

        assert cli(["fresh"]) == 0

        assert "Aborted." in capsys.readouterr().out
        assert all(row["ran"] for row in status_json(capsys))

    def test_fresh_force(self, two_migrations, capsys):
        cli(["migrate", "--step", "1"])
        cli(["migrate"])
        capsys.readouterr()

        assert cli(["fresh", "--force"]) == 0

        assert "Dropped all tables and migrated 2 migrations" in capsys.readouterr().out
        assert all(row["batch"] == 1 for row in status_json(capsys))

    def test_fresh_without_tty_aborts(self, two_migrations, monkeypatch, capsys):
        def no_tty(prompt):
            raise EOFError

        monkeypatch.setattr("builtins.input", no_tty)
        assert cli(["fresh"]) == 0
        assert "Aborted." in capsys.readouterr().out

    def test_production_migrate_requires_confirmation(self, two_migrations, monkeypatch, capsys):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setattr("builtins.input", lambda prompt: "no")

        assert cli(["migrate"]) == 0

        assert "Application is in production" in capsys.readouterr().out
        assert not any(row["ran"] for row in status_json(capsys))

    def test_production_migrate_confirmed(self, two_migrations, monkeypatch, capsys):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setattr("builtins.input", lambda prompt: "yes")

        assert cli(["migrate"]) == 0

        assert all(row["ran"] for row in status_json(capsys))

    def test_production_force_skips_prompt(self, two_migrations, monkeypatch, capsys):
        monkeypatch.setenv("ENVIRONMENT", "production")

        def fail(prompt):
            raise AssertionError("prompted despite --force")

        monkeypatch.setattr("builtins.input", fail)
        assert cli(["migrate", "--force"]) == 0
