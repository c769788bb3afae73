"""Tests for the exception framework."""

import pytest

from treeknobs_common.exceptions import (
    ConcurrencyError,
    ConfigurationError,
    NotFoundError,
    OperationError,
    TreeknobsError,
    ValidationError,
)


class TestTreeknobsError:
    """Test the base TreeknobsError class."""

    def test_basic_exception(self):
        """Test basic exception without context."""
        error = TreeknobsError("Something went wrong")
        assert str(error) == "Something went wrong"
        assert error.context == {}
        assert error.details == {}

    def test_exception_with_context(self):
        """Test exception with context dictionary."""
        error = TreeknobsError(
            "Operation failed",
            context={"operation": "add_property", "key": "a.b"}
        )
        assert str(error) == "Operation failed"
        assert error.context == {"operation": "add_property", "key": "a.b"}
        assert error.details is error.context

    def test_details_takes_precedence(self):
        """Test that details parameter takes precedence over context."""
        error = TreeknobsError(
            "Error",
            context={"key": "context_value"},
            details={"key": "details_value"}
        )
        assert error.context == {"key": "details_value"}

    def test_exception_inheritance(self):
        """Test that exception can be caught as Exception."""
        with pytest.raises(Exception):
            raise TreeknobsError("Test")


class TestSpecificExceptions:
    """Test the generic exception categories."""

    @pytest.mark.parametrize(
        "exc_class",
        [ValidationError, ConfigurationError, NotFoundError, OperationError, ConcurrencyError],
    )
    def test_subclass_of_base(self, exc_class):
        """Test that all categories derive from TreeknobsError and keep context."""
        error = exc_class("failed", context={"selector": "tables.table(1)"})
        assert isinstance(error, TreeknobsError)
        assert error.context["selector"] == "tables.table(1)"

    def test_catch_with_base(self):
        """Test catching a specific error through the base class."""
        with pytest.raises(TreeknobsError) as exc_info:
            raise NotFoundError("missing", context={"key": "x"})
        assert exc_info.value.context == {"key": "x"}
