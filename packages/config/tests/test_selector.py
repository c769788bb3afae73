"""Tests for NodeSelector."""

import pytest

from treeknobs_config import DEFAULT_EXPRESSION_ENGINE, NodeSelector, TreeData


@pytest.fixture
def tree(sample_root):
    return TreeData(sample_root)


class TestNodeSelector:
    """Tests for selecting nodes by key."""

    def test_select_unique_node(self, tree):
        """Test a key selecting exactly one node."""
        node = NodeSelector("tables.table(1)").select(tree.root, DEFAULT_EXPRESSION_ENGINE, tree)
        assert node is tree.root.children[0].children[1]

    @pytest.mark.parametrize(
        "key",
        [
            "tables.table",          # two nodes
            "tables.table(7)",       # nothing
            "tables.table[@type]",   # attribute
            "tables.table(",         # not parsable
        ],
    )
    def test_select_returns_none(self, tree, key):
        """Test selections that do not yield a single node."""
        assert NodeSelector(key).select(tree.root, DEFAULT_EXPRESSION_ENGINE, tree) is None

    def test_equality_by_key(self):
        """Test that selectors with the same key are interchangeable."""
        assert NodeSelector("a.b") == NodeSelector("a.b")
        assert hash(NodeSelector("a.b")) == hash(NodeSelector("a.b"))
        assert NodeSelector("a.b") != NodeSelector("a.c")
        assert len({NodeSelector("a"), NodeSelector("a")}) == 1

    def test_immutable(self):
        """Test that the key cannot be changed."""
        selector = NodeSelector("a")
        with pytest.raises(AttributeError):
            selector.key = "b"

    def test_str(self):
        """Test the string representation."""
        assert str(NodeSelector("a.b")) == "NodeSelector[a.b]"
