"""Tests for node handlers."""

import pytest

from treeknobs_config import (
    DelegatingNodeHandler,
    ImmutableNode,
    InMemoryNodeModel,
    InvalidArgumentError,
    TreeData,
    UnsupportedOperationError,
    build_node_from_string,
)
from treeknobs_config.handler import combine_values


@pytest.fixture
def tree():
    return TreeData(build_node_from_string("(root (a x y) (b z) (a w))"))


class TestTreeData:
    """Tests for the read-only tree snapshot."""

    def test_children_by_name(self, tree):
        """Test querying children with and without a name."""
        root = tree.root
        assert [c.name for c in tree.get_children(root)] == ["a", "b", "a"]
        assert len(tree.get_children(root, "a")) == 2
        assert tree.get_children_count(root, "b") == 1
        assert tree.get_child(root, 1).name == "b"

    def test_parent_and_depth(self, tree):
        """Test the parent index."""
        root = tree.root
        a = root.children[0]
        x = a.children[0]

        assert tree.get_parent(root) is None
        assert tree.get_parent(x) is a
        assert tree.get_depth(root) == 0
        assert tree.get_depth(x) == 2

    def test_parent_of_foreign_node(self, tree):
        """Test that nodes of other trees are rejected."""
        with pytest.raises(InvalidArgumentError):
            tree.get_parent(ImmutableNode("a"))

    def test_index_of_child(self, tree):
        """Test index lookup by identity."""
        root = tree.root
        assert tree.index_of_child(root, root.children[2]) == 2
        assert tree.index_of_child(root, ImmutableNode("a")) == -1

    def test_attribute_queries(self):
        """Test attribute access."""
        tree = TreeData(ImmutableNode("n", attributes={"k": "v"}))
        assert tree.get_attributes(tree.root) == {"k"}
        assert tree.get_attribute_value(tree.root, "k") == "v"
        assert tree.get_attribute_value(tree.root, "missing") is None
        assert tree.has_attributes(tree.root)
        assert tree.is_defined(tree.root)

    @pytest.mark.parametrize(
        "operation, args",
        [
            ("add_child", ("c",)),
            ("set_value", (1,)),
            ("add_attribute_value", ("k", 1)),
            ("set_attribute_value", ("k", 1)),
            ("remove_attribute", ("k",)),
        ],
    )
    def test_mutations_not_supported(self, tree, operation, args):
        """Test that the snapshot cannot be modified."""
        with pytest.raises(UnsupportedOperationError):
            getattr(tree, operation)(tree.root, *args)


class TestInMemoryNodeHandler:
    """Tests for the handler bound to an in-memory model."""

    def test_set_value_updates_model(self):
        """Test that mutations are applied as copy-on-write updates."""
        model = InMemoryNodeModel(build_node_from_string("(root (a x=1))"))
        handler = model.get_node_handler()
        old_root = model.get_root_node()
        x = old_root.children[0].children[0]

        new_x = handler.set_value(x, "2")

        assert new_x.value == "2"
        assert x.value == "1"
        assert model.get_root_node() is not old_root
        assert model.get_root_node().children[0].children[0] is new_x
        assert handler.get_parent(new_x) is model.get_root_node().children[0]

    def test_add_child_and_attributes(self):
        """Test adding children and attribute values."""
        model = InMemoryNodeModel(ImmutableNode("root"))
        handler = model.get_node_handler()

        child = handler.add_child(model.get_root_node(), "child")
        child = handler.add_attribute_value(child, "tag", "a")
        child = handler.add_attribute_value(child, "tag", "b")

        root = model.get_root_node()
        assert root.children[0] is child
        assert child.attributes["tag"] == ["a", "b"]

        child = handler.remove_attribute(child, "tag")
        assert not handler.has_attributes(model.get_root_node().children[0])

    def test_remove_child(self):
        """Test removing a child."""
        model = InMemoryNodeModel(build_node_from_string("(root a b)"))
        handler = model.get_node_handler()
        root = model.get_root_node()

        handler.remove_child(root, root.children[0])

        assert [c.name for c in model.get_root_node().children] == ["b"]


class TestDelegatingNodeHandler:
    """Tests for the handler cutting the parent of a sub-tree root."""

    def test_root_has_no_parent(self, tree):
        """Test that the sub-tree root is treated as root."""
        a = tree.root.children[0]
        handler = DelegatingNodeHandler(a, tree)

        assert handler.root is a
        assert handler.get_parent(a) is None
        assert handler.get_parent(a.children[0]) is a
        assert handler.get_children_count(a) == 2


def test_combine_values():
    """Test combining attribute values."""
    assert combine_values(None, 1) == 1
    assert combine_values(1, 2) == [1, 2]
    assert combine_values([1, 2], 3) == [1, 2, 3]
