"""
Command line interface for strata.

Usage:
    strata make create_users_table --create
    strata migrate
    strata migrate --step 1
    strata rollback
    strata rollback --step 2
    strata rollback --batch 3
    strata reset
    strata refresh [--step N]
    strata fresh
    strata status

Settings (DATABASE_URL, MIGRATIONS_DIR, ...) come from the environment and
.env files; --database, --path, --table and --dialect override them.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from strata import __version__
from strata.config import Settings, configure_logging, get_settings
from strata.datetime import timezone
from strata.exceptions import ConfigurationError, MigrationExecutionError, StrataException
from strata.migrations.engine import Migrator
from strata.migrations.migration import MigratorConfig


# =============================================================================
# Output helpers
# =============================================================================

class Colors:
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def color(text: str, c: str) -> str:
    """Apply a color to text."""
    return f"{c}{text}{Colors.ENDC}"


def success(text: str) -> str:
    return color(text, Colors.GREEN)


def error(text: str) -> str:
    return color(text, Colors.FAIL)


def warning(text: str) -> str:
    return color(text, Colors.WARNING)


def info(text: str) -> str:
    return color(text, Colors.CYAN)


def bold(text: str) -> str:
    return color(text, Colors.BOLD)


# =============================================================================
# Plumbing
# =============================================================================

def load_config(args: argparse.Namespace, settings: Settings) -> MigratorConfig:
    """Settings + command line overrides -> MigratorConfig."""
    try:
        return settings.migrator_config(
            database_url=args.database,
            migrations_dir=args.path,
            table_name=args.table,
            dialect=args.dialect,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def run_with_migrator(
    config: MigratorConfig,
    action: Callable[[Migrator], Awaitable[Any]],
) -> Any:
    """Connect, run one operation, close."""

    async def run() -> Any:
        async with Migrator(config) as migrator:
            return await action(migrator)

    return asyncio.run(run())


def confirm(prompt: str) -> bool:
    """Ask a yes/no question; anything but y/yes (or no tty) is a no."""
    try:
        answer = input(error(prompt))
    except (KeyboardInterrupt, EOFError):
        print()
        return False
    return answer.strip().lower() in ("y", "yes")


def confirm_production(args: argparse.Namespace, settings: Settings, action: str) -> bool:
    """Production runs need --force or an explicit yes."""
    if args.force or not settings.is_production:
        return True

    print(warning(f"Application is in production. About to {action}."))
    if confirm("Do you really wish to continue? [y/N]: "):
        return True
    print(info("Aborted."))
    return False


def _plural(count: int) -> str:
    return f"{count} migration{'s' if count != 1 else ''}"


# =============================================================================
# Commands
# =============================================================================

def cmd_make(args: argparse.Namespace, settings: Settings) -> int:
    """Create a new migration file."""
    migrator = Migrator(load_config(args, settings))
    path = migrator.create_migration(args.name, create_table=args.create)
    print(success(f"✓ Created migration: {path}"))
    return 0


def cmd_migrate(args: argparse.Namespace, settings: Settings) -> int:
    """Apply pending migrations."""
    if not confirm_production(args, settings, "run migrations"):
        return 0

    config = load_config(args, settings)
    print(info("Running migrations..."))

    if args.step:
        count = run_with_migrator(config, lambda m: m.migrate_step(args.step))
    else:
        count = run_with_migrator(config, lambda m: m.migrate())

    if count:
        print(success(f"✓ Migrated {_plural(count)}"))
    else:
        print(info("Nothing to migrate."))
    return 0


def cmd_rollback(args: argparse.Namespace, settings: Settings) -> int:
    """Roll back the last batch, N steps, or one batch."""
    if not confirm_production(args, settings, "roll back migrations"):
        return 0

    config = load_config(args, settings)
    print(info("Rolling back migrations..."))

    if args.step:
        count = run_with_migrator(config, lambda m: m.rollback_step(args.step))
    elif args.batch:
        count = run_with_migrator(config, lambda m: m.rollback_batch(args.batch))
    else:
        count = run_with_migrator(config, lambda m: m.rollback())

    if count:
        print(success(f"✓ Rolled back {_plural(count)}"))
    else:
        print(info("Nothing to rollback."))
    return 0


def cmd_reset(args: argparse.Namespace, settings: Settings) -> int:
    """Roll back every migration."""
    if not confirm_production(args, settings, "roll back ALL migrations"):
        return 0

    config = load_config(args, settings)
    print(info("Resetting migrations..."))

    count = run_with_migrator(config, lambda m: m.reset())
    if count:
        print(success(f"✓ Rolled back {_plural(count)}"))
    else:
        print(info("Nothing to reset."))
    return 0


def cmd_refresh(args: argparse.Namespace, settings: Settings) -> int:
    """Roll back (all or N steps) and migrate again."""
    if not confirm_production(args, settings, "refresh migrations"):
        return 0

    config = load_config(args, settings)
    print(info("Refreshing migrations..."))

    rolled_back, migrated = run_with_migrator(config, lambda m: m.refresh(args.step))
    print(success(f"✓ Rolled back {_plural(rolled_back)}, migrated {_plural(migrated)}"))
    return 0


def cmd_fresh(args: argparse.Namespace, settings: Settings) -> int:
    """
    Drop all tables and run every migration.

    Always asks first unless --force is given: the data is gone for good.
    """
    config = load_config(args, settings)

    if not args.force:
        print()
        print(error("=" * 60))
        print(error("  WARNING: DROP ALL TABLES"))
        print(error("=" * 60))
        print()
        print(warning("This will PERMANENTLY DELETE every table and its data,"))
        print(warning("including the migration history."))
        print()
        if not confirm("Do you really wish to continue? [y/N]: "):
            print(info("Aborted."))
            return 0

    print(info("Dropping all tables..."))
    count = run_with_migrator(config, lambda m: m.fresh())
    print(success(f"✓ Dropped all tables and migrated {_plural(count)}"))
    return 0


def cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    """Show which migrations ran."""
    config = load_config(args, settings)
    statuses = run_with_migrator(config, lambda m: m.status())

    if args.json:
        print(json.dumps(
            [
                {
                    "migration": entry.migration.identifier,
                    "ran": entry.ran,
                    "batch": entry.batch or None,
                    "applied_at": entry.applied_at.isoformat() if entry.applied_at else None,
                }
                for entry in statuses
            ],
            indent=2,
        ))
        return 0

    if not statuses:
        print(info("No migrations found."))
        return 0

    width = max(len(entry.migration.identifier) for entry in statuses)
    print(bold(f"    {'Migration'.ljust(width)}  Batch  Applied at"))
    for entry in statuses:
        name = entry.migration.identifier.ljust(width)
        if entry.ran:
            applied = timezone.format(entry.applied_at) if entry.applied_at else ""
            print(f"{success('[X]')} {name}  {str(entry.batch).ljust(5)}  {applied}")
        else:
            print(f"{warning('[ ]')} {name}")

    pending = sum(1 for entry in statuses if entry.pending)
    print()
    print(info(f"{len(statuses) - pending} ran, {pending} pending"))
    return 0


# =============================================================================
# Parser
# =============================================================================

def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def create_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--database", "-d", help="Database URL (default: DATABASE_URL)")
    common.add_argument("--path", "-p", help="Migrations directory (default: MIGRATIONS_DIR or ./migrations)")
    common.add_argument("--table", help="History table name (default: strata_migrations)")
    common.add_argument("--dialect", help="postgresql, mysql or sqlite (default: detected from the URL)")
    common.add_argument("--force", "-f", action="store_true", help="Skip confirmation prompts")

    parser = argparse.ArgumentParser(
        prog="strata",
        description="strata - batch-based SQL schema migrations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  strata make create_users_table --create   Create a CREATE TABLE migration
  strata migrate                            Apply pending migrations
  strata rollback                           Undo the last batch
  strata status                             Show migration status
        """,
    )
    parser.add_argument("-v", "--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    make_parser = subparsers.add_parser("make", parents=[common], help="Create a new migration file")
    make_parser.add_argument("name", help="Migration name, e.g. create_users_table")
    make_parser.add_argument("--create", "-c", action="store_true", help="Generate a CREATE TABLE template")
    make_parser.set_defaults(func=cmd_make)

    migrate_parser = subparsers.add_parser("migrate", parents=[common], help="Apply pending migrations")
    migrate_parser.add_argument("--step", type=_positive_int, help="Apply at most N migrations")
    migrate_parser.set_defaults(func=cmd_migrate)

    rollback_parser = subparsers.add_parser("rollback", parents=[common], help="Roll back migrations")
    target = rollback_parser.add_mutually_exclusive_group()
    target.add_argument("--step", type=_positive_int, help="Roll back the last N migrations")
    target.add_argument("--batch", type=_positive_int, help="Roll back a specific batch")
    rollback_parser.set_defaults(func=cmd_rollback)

    reset_parser = subparsers.add_parser("reset", parents=[common], help="Roll back all migrations")
    reset_parser.set_defaults(func=cmd_reset)

    refresh_parser = subparsers.add_parser("refresh", parents=[common], help="Roll back and re-run migrations")
    refresh_parser.add_argument("--step", type=_positive_int, help="Only refresh the last N migrations")
    refresh_parser.set_defaults(func=cmd_refresh)

    fresh_parser = subparsers.add_parser("fresh", parents=[common], help="Drop all tables and re-run migrations")
    fresh_parser.set_defaults(func=cmd_fresh)

    status_parser = subparsers.add_parser("status", parents=[common], help="Show migration status")
    status_parser.add_argument("--json", action="store_true", help="Print status as JSON")
    status_parser.set_defaults(func=cmd_status)

    return parser


def cli(args: list[str] | None = None) -> int:
    """Run the CLI and return the exit code."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if parsed_args.version:
        print(f"strata {__version__}")
        return 0

    if not parsed_args.command:
        parser.print_help()
        return 0

    try:
        settings = get_settings()
    except ValidationError as e:
        print(error(f"✗ Invalid settings: {e}"))
        return 1

    configure_logging(settings)
    try:
        return parsed_args.func(parsed_args, settings)
    except MigrationExecutionError as e:
        print(error(f"✗ {e.message}"))
        if e.completed:
            print(warning(f"  {_plural(e.completed)} completed before the failure"))
        return 1
    except StrataException as e:
        print(error(f"✗ {e.message}"))
        return 1


def main() -> None:
    """Console script entry point."""
    sys.exit(cli())


if __name__ == "__main__":
    main()
