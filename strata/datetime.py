"""
UTC date/time helpers.

Migration versions are timestamps, so every place that reads the clock or
turns a version back into a datetime goes through this module.

Usage:
    from strata.datetime import timezone

    version = timezone.version()            # "20240115103000"
    created = timezone.parse_version(version)
"""

from __future__ import annotations

from datetime import (
    datetime as _datetime,
    timezone as _timezone,
)
from typing import Any


UTC = _timezone.utc

# YYYYMMDDHHmmss: fixed width, so lexicographic order is chronological
VERSION_FORMAT = "%Y%m%d%H%M%S"
VERSION_LENGTH = 14

HUMAN_FORMAT = "%Y-%m-%d %H:%M:%S"


def now() -> _datetime:
    """Return the current aware datetime in UTC."""
    return _datetime.now(UTC)


def format_version(dt: _datetime | None = None) -> str:
    """
    Format a datetime as a 14-digit migration version.

    Aware datetimes are converted to UTC first; naive ones are taken as-is.
    """
    if dt is None:
        dt = now()
    elif dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.strftime(VERSION_FORMAT)


def parse_version(version: str) -> _datetime:
    """
    Parse a 14-digit version back into a naive UTC datetime.

    Raises:
        ValueError: If the version is not 14 digits or not a real date
    """
    if len(version) != VERSION_LENGTH or not version.isdigit():
        raise ValueError(f"invalid version format: {version!r}")
    return _datetime.strptime(version, VERSION_FORMAT)


def parse_timestamp(value: Any) -> _datetime | None:
    """
    Coerce a timestamp column value into a datetime.

    SQLite hands DATETIME columns back as text ("2024-01-15 10:30:00");
    PostgreSQL and MySQL drivers already return datetime objects.
    """
    if value is None or isinstance(value, _datetime):
        return value
    if isinstance(value, bytes):
        value = value.decode()
    return _datetime.fromisoformat(str(value))


class timezone:
    """
    Namespace with the helpers above (Django-style ``timezone.now()``).

    Usage:
        from strata.datetime import timezone

        current = timezone.now()
        version = timezone.version(current)
    """

    utc = UTC

    @staticmethod
    def now() -> _datetime:
        """Return the current datetime in UTC."""
        return now()

    @staticmethod
    def version(dt: _datetime | None = None) -> str:
        """Return ``dt`` (default: now) as a migration version."""
        return format_version(dt)

    @staticmethod
    def parse_version(version: str) -> _datetime:
        """Parse a migration version into a datetime."""
        return parse_version(version)

    @staticmethod
    def format(dt: _datetime, fmt: str = HUMAN_FORMAT) -> str:
        """Format a datetime for humans (templates, status output)."""
        return dt.strftime(fmt)


__all__ = [
    "UTC",
    "VERSION_FORMAT",
    "VERSION_LENGTH",
    "now",
    "format_version",
    "parse_version",
    "parse_timestamp",
    "timezone",
]
