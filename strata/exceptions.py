"""
Centralized exception classes for strata.

Every error the migration engine raises derives from StrataException, so
callers (the CLI, a deploy script) can catch one type and still inspect
the machine-readable ``code`` and ``details``.

Exception Hierarchy:
    StrataException (base)
    ├── ConfigurationError
    └── MigrationError
        ├── MigrationConnectionError
        ├── NotConnectedError
        ├── HistoryTableError
        ├── DiscoveryError
        ├── TemplateError
        └── MigrationExecutionError
            └── MissingSectionError

Example:
    from strata.exceptions import MigrationExecutionError

    try:
        await migrator.migrate()
    except MigrationExecutionError as exc:
        print(exc.migration, exc.completed)
"""

from __future__ import annotations

from typing import Any


# =============================================================================
# Base Exception
# =============================================================================

class StrataException(Exception):
    """
    Base exception for all strata exceptions.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional error details
    """

    message: str = "An error occurred"
    code: str = "error"

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary (logs, structured output)."""
        result = {
            "message": self.message,
            "code": self.code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, code={self.code!r})"


# =============================================================================
# Configuration Exceptions
# =============================================================================

class ConfigurationError(StrataException):
    """
    Raised when there's a configuration error.

    Example:
        raise ConfigurationError("DATABASE_URL is not set")
    """

    message = "Configuration error"
    code = "configuration_error"


# =============================================================================
# Migration Exceptions
# =============================================================================

class MigrationError(StrataException):
    """Base exception for migration engine errors."""

    message = "Migration error"
    code = "migration_error"


class MigrationConnectionError(MigrationError):
    """Raised when the database cannot be opened or pinged. Never retried."""

    message = "Database connection failed"
    code = "connection_error"


class NotConnectedError(MigrationError):
    """Raised when an operation that needs the database runs before connect()."""

    message = "Migrator is not connected; call connect() first"
    code = "not_connected"


class HistoryTableError(MigrationError):
    """
    Raised when the migration history table cannot be provisioned.

    Example:
        raise HistoryTableError(
            "Failed to create migrations table: permission denied",
            table="strata_migrations",
        )
    """

    message = "Failed to create migrations table"
    code = "history_table_error"

    def __init__(self, message: str | None = None, table: str | None = None) -> None:
        super().__init__(message=message, details={"table": table})
        self.table = table


class DiscoveryError(MigrationError):
    """Raised when the migrations directory cannot be read."""

    message = "Failed to read migrations directory"
    code = "discovery_error"

    def __init__(self, message: str | None = None, path: str | None = None) -> None:
        super().__init__(message=message, details={"path": path})
        self.path = path


class TemplateError(MigrationError):
    """Raised when a new migration file cannot be written."""

    message = "Failed to write migration file"
    code = "template_error"


class MigrationExecutionError(MigrationError):
    """
    Raised when a single migration fails to run.

    The migration's transaction has already been rolled back when this is
    raised. ``completed`` is set by multi-migration operations to the number
    of migrations that committed earlier in the same run.

    Example:
        raise MigrationExecutionError(
            "syntax error at or near 'CREAT'",
            migration="20240101000000_create_users",
            direction="up",
        )
    """

    message = "Migration failed"
    code = "execution_error"

    def __init__(
        self,
        message: str | None = None,
        migration: str | None = None,
        direction: str | None = None,
        completed: int = 0,
    ) -> None:
        if message and migration:
            message = f"migration {migration} failed ({direction}): {message}"
        super().__init__(
            message=message,
            details={"migration": migration, "direction": direction},
        )
        self.migration = migration
        self.direction = direction
        self.completed = completed

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["details"] = {**self.details, "completed": self.completed}
        return result


class MissingSectionError(MigrationExecutionError):
    """
    Raised when the requested direction has no SQL.

    A file without markers is an up-only migration, so rolling it back
    raises this instead of silently doing nothing.
    """

    message = "No SQL found for the requested direction"
    code = "missing_section"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Base
    "StrataException",

    # Configuration
    "ConfigurationError",

    # Migrations
    "MigrationError",
    "MigrationConnectionError",
    "NotConnectedError",
    "HistoryTableError",
    "DiscoveryError",
    "TemplateError",
    "MigrationExecutionError",
    "MissingSectionError",
]
