"""
Tests for the exception hierarchy.
"""

import pytest

from strata.exceptions import (
    ConfigurationError,
    DiscoveryError,
    HistoryTableError,
    MigrationConnectionError,
    MigrationError,
    MigrationExecutionError,
    MissingSectionError,
    NotConnectedError,
    StrataException,
    TemplateError,
)


class TestHierarchy:
    @pytest.mark.parametrize("exc_class", [
        MigrationConnectionError,
        NotConnectedError,
        HistoryTableError,
        DiscoveryError,
        TemplateError,
        MigrationExecutionError,
        MissingSectionError,
    ])
    def test_migration_errors(self, exc_class):
        assert issubclass(exc_class, MigrationError)
        assert issubclass(exc_class, StrataException)

    def test_configuration_error_is_not_a_migration_error(self):
        assert issubclass(ConfigurationError, StrataException)
        assert not issubclass(ConfigurationError, MigrationError)

    def test_missing_section_is_an_execution_error(self):
        assert issubclass(MissingSectionError, MigrationExecutionError)


class TestStrataException:
    def test_defaults(self):
        exc = NotConnectedError()
        assert exc.code == "not_connected"
        assert "connect()" in str(exc)
        assert exc.to_dict() == {"message": exc.message, "code": "not_connected"}

    def test_custom_message_and_details(self):
        exc = StrataException("boom", code="custom", details={"key": "value"})
        assert str(exc) == "boom"
        assert exc.to_dict() == {"message": "boom", "code": "custom", "details": {"key": "value"}}


class TestMigrationExecutionError:
    def test_message_names_migration_and_direction(self):
        exc = MigrationExecutionError(
            "no such table: users",
            migration="20240101000000_add_email",
            direction="up",
        )
        assert str(exc) == "migration 20240101000000_add_email failed (up): no such table: users"
        assert exc.migration == "20240101000000_add_email"
        assert exc.direction == "up"
        assert exc.completed == 0

    def test_to_dict_reports_completed(self):
        exc = MigrationExecutionError("x", migration="m", direction="down")
        exc.completed = 2

        data = exc.to_dict()

        assert data["code"] == "execution_error"
        assert data["details"] == {"migration": "m", "direction": "down", "completed": 2}
        assert "completed" not in exc.details

    def test_history_table_error_carries_table(self):
        exc = HistoryTableError("permission denied", table="strata_migrations")
        assert exc.table == "strata_migrations"
        assert exc.details == {"table": "strata_migrations"}
