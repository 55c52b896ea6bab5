"""
Centralized settings for strata.

Settings are read once from the OS environment and from .env files and
then turned into an explicit MigratorConfig value object. The engine
never reads settings itself: the CLI (or your own script) does.

Usage:
    from strata.config import get_settings
    from strata.migrations import Migrator

    settings = get_settings()
    async with Migrator(settings.migrator_config()) as migrator:
        await migrator.migrate()

Configuration via .env:
    DATABASE_URL=postgresql+asyncpg://localhost/myapp
    MIGRATIONS_DIR=./database/migrations
    MIGRATIONS_TABLE=strata_migrations

Or via code (before the first get_settings() call):
    from strata.config import configure

    configure(database_url="sqlite+aiosqlite:///./app.db")

.env resolution by environment:
    Precedence (highest to lowest):
    1. OS environment variables
    2. .env.{ENVIRONMENT} (e.g. .env.production)
    3. .env (base)
    4. Settings class defaults
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import Field as PydanticField, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from strata.migrations.migration import MigratorConfig

logger = logging.getLogger("strata.config")


# =========================================================================
# ENV FILE RESOLUTION
# =========================================================================

def _resolve_env_files() -> tuple[str, ...]:
    """
    Resolve .env files from the ENVIRONMENT variable.

    Returns:
        Tuple of .env paths, lowest precedence first
    """
    env = os.environ.get("ENVIRONMENT", "development")
    files: list[str] = []

    if Path(".env").is_file():
        files.append(".env")

    env_file = f".env.{env}"
    if Path(env_file).is_file():
        files.append(env_file)

    # pydantic-settings ignores a missing .env
    return tuple(files) if files else (".env",)


class Settings(BaseSettings):
    """
    strata settings.

    Example:
        settings = Settings(database_url="sqlite+aiosqlite:///./app.db")
        config = settings.migrator_config()

    Environment variables loaded automatically:
        DATABASE_URL, MIGRATIONS_DIR, MIGRATIONS_TABLE, DIALECT,
        ENVIRONMENT, LOG_LEVEL, LOG_FORMAT
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # =========================================================================
    # Application
    # =========================================================================

    environment: Literal["development", "staging", "production", "testing"] = PydanticField(
        default="development",
        description="Execution environment; production makes the CLI ask before changing the schema",
    )

    # =========================================================================
    # Database
    # =========================================================================

    database_url: str | None = PydanticField(
        default=None,
        description="Database URL (plain postgres://, mysql://, sqlite:// or SQLAlchemy async URL)",
    )
    dialect: str | None = PydanticField(
        default=None,
        description="postgresql, mysql or sqlite; detected from DATABASE_URL when empty",
    )

    # =========================================================================
    # Migrations
    # =========================================================================

    migrations_dir: str = PydanticField(
        default="./migrations",
        description="Directory holding the {version}_{name}.sql files",
    )
    migrations_table: str = PydanticField(
        default="strata_migrations",
        description="Name of the migration history table",
    )

    # =========================================================================
    # Logging
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = PydanticField(
        default="INFO",
        description="Log level",
    )
    log_format: str = PydanticField(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )

    @field_validator("dialect", "database_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        # DIALECT= in a .env file means "not set"
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def migrator_config(self, **overrides: Any) -> "MigratorConfig":
        """
        Build the engine's configuration value object.

        Args:
            **overrides: Field values that win over the settings
                (database_url, migrations_dir, table_name, dialect).
                None values are ignored.
        """
        from strata.migrations.migration import MigratorConfig

        values: dict[str, Any] = {
            "database_url": self.database_url,
            "migrations_dir": self.migrations_dir,
            "table_name": self.migrations_table,
            "dialect": self.dialect,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return MigratorConfig(**values)


# =========================================================================
# GLOBAL SETTINGS SINGLETON
# =========================================================================

_settings: Settings | None = None
_settings_class: type[Settings] = Settings


def get_settings() -> Settings:
    """Return the global Settings singleton, loading it on first use."""
    global _settings

    if _settings is None:
        env_files = _resolve_env_files()
        _settings = _settings_class(_env_file=env_files)
        logger.debug(f"Settings loaded from {', '.join(env_files)}")

    return _settings


def configure(
    settings_class: type[Settings] | None = None,
    **overrides: Any,
) -> Settings:
    """
    Configure strata explicitly (tests, embedding scripts).

    Args:
        settings_class: Custom Settings subclass (optional)
        **overrides: Values that override the environment

    Returns:
        The configured Settings
    """
    global _settings, _settings_class

    if settings_class is not None:
        _settings_class = settings_class

    if overrides:
        known_fields = set(_settings_class.model_fields.keys())
        unknown = set(overrides.keys()) - known_fields
        if unknown:
            logger.warning(
                "Unknown settings keys passed to configure(): %s.",
                ", ".join(sorted(unknown)),
            )

    env_files = _resolve_env_files()
    _settings = _settings_class(_env_file=env_files, **overrides)
    return _settings


def is_configured() -> bool:
    """Return True once settings have been loaded."""
    return _settings is not None


def reset_settings() -> None:
    """
    Drop the loaded settings. Intended for tests.

    Ignored (with a warning) when the loaded settings are production ones.
    """
    global _settings, _settings_class

    if _settings is not None and _settings.is_production:
        logger.warning(
            "reset_settings() called in production environment; ignored. "
            "This function is intended for testing only."
        )
        return

    _settings = None
    _settings_class = Settings


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging from settings (used by the CLI)."""
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format=settings.log_format)


__all__ = [
    "Settings",
    "get_settings",
    "configure",
    "is_configured",
    "reset_settings",
    "configure_logging",
]
