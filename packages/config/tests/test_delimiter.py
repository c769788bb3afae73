"""Tests for list delimiter handlers."""

import pytest

from treeknobs_config import (
    DefaultListDelimiterHandler,
    DisabledListDelimiterHandler,
    ListDelimiterHandler,
)


class TestDisabledListDelimiterHandler:
    """Tests for the handler that does not split."""

    def test_no_splitting(self):
        """Test that strings stay single values."""
        handler = DisabledListDelimiterHandler()
        assert handler.to_values("a, b") == ["a, b"]
        assert handler.escape("a,b") == "a,b"

    def test_to_values_flattens(self):
        """Test flattening of collections."""
        handler = DisabledListDelimiterHandler()
        assert handler.to_values(None) == []
        assert handler.to_values(5) == [5]
        assert handler.to_values([1, (2, 3), [4]]) == [1, 2, 3, 4]


class TestDefaultListDelimiterHandler:
    """Tests for the splitting handler."""

    def test_protocol(self):
        """Test protocol conformance."""
        assert isinstance(DefaultListDelimiterHandler(), ListDelimiterHandler)

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("a,b,c", ["a", "b", "c"]),
            (" a , b ", ["a", "b"]),
            ("a\\,b,c", ["a,b", "c"]),
            ("a\\\\,b", ["a\\", "b"]),
            ("a\\nb", ["a\\nb"]),
            ("single", ["single"]),
        ],
    )
    def test_split(self, value, expected):
        """Test splitting strings."""
        assert DefaultListDelimiterHandler().split(value) == expected

    def test_split_without_trim(self):
        """Test keeping whitespace."""
        assert DefaultListDelimiterHandler().split(" a , b", trim=False) == [" a ", " b"]

    def test_other_delimiter(self):
        """Test a custom delimiter."""
        handler = DefaultListDelimiterHandler(";")
        assert handler.to_values(["x;y", "z,w"]) == ["x", "y", "z,w"]

    def test_escape(self):
        """Test that escaped values split back to the original."""
        handler = DefaultListDelimiterHandler()
        escaped = handler.escape("a,b\\c")
        assert escaped == "a\\,b\\\\c"
        assert handler.split(escaped) == ["a,b\\c"]
        assert handler.escape(5) == 5
