"""Tests for immutable nodes and tree building helpers."""

import pytest

from treeknobs_config.node import (
    ImmutableNode,
    build_dot,
    build_node_from_string,
    node_from_dict,
    node_to_dict,
)


class TestImmutableNode:
    """Tests for ImmutableNode."""

    def test_defaults(self):
        """Test a node created without arguments."""
        node = ImmutableNode()
        assert node.name is None
        assert node.value is None
        assert node.children == ()
        assert dict(node.attributes) == {}
        assert not node.is_defined()

    def test_attributes_are_read_only(self):
        """Test that the attribute mapping cannot be modified."""
        attrs = {"type": "system"}
        node = ImmutableNode("table", attributes=attrs)
        attrs["type"] = "user"

        assert node.attributes["type"] == "system"
        with pytest.raises(TypeError):
            node.attributes["type"] = "other"

    def test_set_value_returns_copy(self):
        """Test that set_value leaves the original unchanged."""
        child = ImmutableNode("c")
        node = ImmutableNode("n", 1, [child])
        updated = node.set_value(2)

        assert node.value == 1
        assert updated.value == 2
        assert updated is not node
        assert updated.children[0] is child

    def test_set_value_to_none(self):
        """Test clearing the value of a node."""
        assert ImmutableNode("n", 1).set_value(None).value is None

    def test_add_and_remove_child_by_identity(self):
        """Test that children are removed by identity, not by content."""
        first = ImmutableNode("child1")
        second = ImmutableNode("child1")
        node = ImmutableNode("root", children=[first, ImmutableNode("other"), second])

        updated = node.remove_child(second)

        assert len(updated.children) == 2
        assert updated.children[0] is first
        assert node.remove_child(ImmutableNode("child1")) is node

    def test_replace_child(self):
        """Test replacing a child keeps its position."""
        a, b = ImmutableNode("a"), ImmutableNode("b")
        node = ImmutableNode("root", children=[a, b])
        c = ImmutableNode("c")

        updated = node.replace_child(a, c)

        assert [child.name for child in updated.children] == ["c", "b"]
        assert node.replace_child(c, a) is node

    def test_attributes_copy_on_write(self):
        """Test attribute helpers."""
        node = ImmutableNode("n", attributes={"a": 1})
        updated = node.set_attribute("b", 2).set_attributes({"c": 3}).remove_attribute("a")

        assert dict(updated.attributes) == {"b": 2, "c": 3}
        assert dict(node.attributes) == {"a": 1}
        assert node.remove_attribute("missing") is node

    def test_walk_depth_first(self):
        """Test that walk yields nodes in document order."""
        root = build_node_from_string("(a (b c d) (e f))")
        assert [n.name for n in root.walk()] == ["a", "b", "c", "d", "e", "f"]

    def test_no_value_equality(self):
        """Test that nodes compare by identity."""
        assert ImmutableNode("a", 1) != ImmutableNode("a", 1)


class TestTreeBuilders:
    """Tests for the helpers building trees from other structures."""

    def test_node_from_dict(self, sample_root):
        """Test building a tree from a dictionary."""
        tables = sample_root.children[0]
        assert tables.name == "tables"
        assert [t.name for t in tables.children] == ["table", "table"]
        assert tables.children[0].attributes["type"] == "system"
        assert tables.children[1].children[0].value == "documents"

    def test_node_from_dict_value_key(self):
        """Test the special _value key."""
        node = node_from_dict({"_value": 42, "@unit": "s"}, name="timeout")
        assert node.name == "timeout"
        assert node.value == 42
        assert node.attributes["unit"] == "s"

    def test_node_to_dict_inverse(self, sample_config_dict, sample_root):
        """Test converting a tree back to a dictionary."""
        assert node_to_dict(sample_root) == sample_config_dict

    def test_build_node_from_string(self):
        """Test parsing a parenthesized tree string."""
        root = build_node_from_string("(config (db host=localhost port=5432) debug=true)")

        assert root.name == "config"
        db = root.children[0]
        assert db.name == "db"
        assert [(c.name, c.value) for c in db.children] == [
            ("host", "localhost"),
            ("port", "5432"),
        ]
        assert root.children[1].value == "true"

    def test_build_node_from_plain_token(self):
        """Test a string without parentheses."""
        node = build_node_from_string("name=value")
        assert (node.name, node.value) == ("name", "value")

    def test_build_dot(self):
        """Test building a graphviz graph."""
        root = build_node_from_string("(a (b c=1))")
        dot = build_dot(root)

        assert "N_000" in dot.source
        assert "c=1" in dot.source
        assert "N_001 -> N_002" in dot.source
