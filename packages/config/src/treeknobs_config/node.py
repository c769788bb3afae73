"""Immutable configuration nodes.

An ``ImmutableNode`` is a labeled element of a configuration tree. It has a
name (``None`` for an anonymous root), an opaque value, an ordered tuple of
children (several children may share a name) and a read-only mapping of
attributes.

Nodes are never changed in place. Every "mutator" returns a new node that
shares all unchanged parts with the original, so a tree can be updated by
copying only the path from the changed node up to the root. Old roots stay
valid snapshots.

Nodes compare by identity: two distinct nodes with equal content are still
different nodes, which is what distinguishes the two ``child1`` nodes in
``[child1, other, child1]``.

Typical usage example:

    ```python
    from treeknobs_config.node import ImmutableNode, node_from_dict

    root = node_from_dict({
        "database": {
            "@type": "postgres",
            "host": "localhost",
            "port": 5432,
        },
        "tables": {"table": ["users", "orders"]},
    })

    database = root.children[0]
    print(database.name)                 # "database"
    print(database.attributes["type"])   # "postgres"

    updated = database.set_attribute("type", "mysql")
    print(database.attributes["type"])   # still "postgres"
    ```
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any, Dict, List, Union

import graphviz
from pyparsing import OneOrMore, nested_expr

_EMPTY_ATTRIBUTES: Mapping[str, Any] = MappingProxyType({})


class ImmutableNode:
    """A node of an immutable configuration tree.

    Attributes:
        name: The node's name, or None for an unnamed root.
        value: The node's value (any object, None if undefined).
        children: Tuple of child nodes in document order.
        attributes: Read-only mapping of attribute names to values.
    """

    __slots__ = ("_name", "_value", "_children", "_attributes")

    def __init__(
        self,
        name: str | None = None,
        value: Any = None,
        children: Iterable[ImmutableNode] = (),
        attributes: Mapping[str, Any] | None = None,
    ) -> None:
        """Initialize a node.

        Args:
            name: Optional node name.
            value: Optional node value.
            children: Child nodes; copied into a tuple.
            attributes: Attribute mapping; copied so later changes to the
                passed in mapping do not affect the node.
        """
        self._name = name
        self._value = value
        self._children = tuple(children)
        self._attributes = (
            MappingProxyType(dict(attributes)) if attributes else _EMPTY_ATTRIBUTES
        )

    def __repr__(self) -> str:
        return (
            f"ImmutableNode({self._name!r}, value={self._value!r}, "
            f"children={len(self._children)}, attributes={dict(self._attributes)!r})"
        )

    def __iter__(self):
        return iter(self._children)

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def value(self) -> Any:
        return self._value

    @property
    def children(self) -> tuple[ImmutableNode, ...]:
        return self._children

    @property
    def attributes(self) -> Mapping[str, Any]:
        return self._attributes

    def is_defined(self) -> bool:
        """True if this node has a value, children or attributes."""
        return (
            self._value is not None
            or len(self._children) > 0
            or len(self._attributes) > 0
        )

    def _copy(self, **changes: Any) -> ImmutableNode:
        return ImmutableNode(
            name=changes.get("name", self._name),
            value=changes.get("value", self._value),
            children=changes.get("children", self._children),
            attributes=changes.get("attributes", self._attributes),
        )

    def set_name(self, name: str | None) -> ImmutableNode:
        """Return a copy of this node with a different name."""
        return self._copy(name=name)

    def set_value(self, value: Any) -> ImmutableNode:
        """Return a copy of this node with a different value."""
        return self._copy(value=value)

    def add_child(self, child: ImmutableNode) -> ImmutableNode:
        """Return a copy of this node with ``child`` appended."""
        return self._copy(children=self._children + (child,))

    def add_children(self, children: Iterable[ImmutableNode]) -> ImmutableNode:
        """Return a copy of this node with all ``children`` appended."""
        new_children = tuple(children)
        if not new_children:
            return self
        return self._copy(children=self._children + new_children)

    def remove_child(self, child: ImmutableNode) -> ImmutableNode:
        """Return a copy of this node without ``child``.

        The child is matched by identity. If it is not a child of this node,
        this node is returned unchanged.
        """
        for idx, current in enumerate(self._children):
            if current is child:
                return self._copy(
                    children=self._children[:idx] + self._children[idx + 1:]
                )
        return self

    def replace_child(
        self, old_child: ImmutableNode, new_child: ImmutableNode
    ) -> ImmutableNode:
        """Return a copy of this node with ``old_child`` replaced by ``new_child``.

        If ``old_child`` is not a child of this node, this node is returned
        unchanged.
        """
        for idx, current in enumerate(self._children):
            if current is old_child:
                children = list(self._children)
                children[idx] = new_child
                return self._copy(children=children)
        return self

    def replace_children(self, children: Iterable[ImmutableNode]) -> ImmutableNode:
        """Return a copy of this node with a new list of children."""
        return self._copy(children=tuple(children))

    def set_attribute(self, name: str, value: Any) -> ImmutableNode:
        """Return a copy of this node with the given attribute set."""
        attributes = dict(self._attributes)
        attributes[name] = value
        return self._copy(attributes=attributes)

    def set_attributes(self, attributes: Mapping[str, Any]) -> ImmutableNode:
        """Return a copy of this node with all given attributes set."""
        if not attributes:
            return self
        merged = dict(self._attributes)
        merged.update(attributes)
        return self._copy(attributes=merged)

    def remove_attribute(self, name: str) -> ImmutableNode:
        """Return a copy of this node without the given attribute.

        If the attribute does not exist, this node is returned unchanged.
        """
        if name not in self._attributes:
            return self
        attributes = dict(self._attributes)
        del attributes[name]
        return self._copy(attributes=attributes)

    def walk(self) -> Iterable[ImmutableNode]:
        """Yield this node and all its descendants depth-first."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node._children))


def node_from_dict(data: Mapping[str, Any], name: str | None = None) -> ImmutableNode:
    """Build a node tree from a nested dictionary.

    Dictionary values become child nodes. A list value creates one child per
    item, all with the same name. Keys starting with ``@`` become attributes
    and the key ``_value`` sets the node's own value.

    Args:
        data: The nested dictionary.
        name: Name of the resulting node.

    Returns:
        The root of the new tree.

    Example:
        ```python
        root = node_from_dict({"server": [{"@port": 80}, {"@port": 443}]})
        [c.attributes["port"] for c in root.children]  # [80, 443]
        ```
    """
    value = None
    attributes: Dict[str, Any] = {}
    children: List[ImmutableNode] = []
    for key, item in data.items():
        if key == "_value":
            value = item
        elif key.startswith("@"):
            attributes[key[1:]] = item
        elif isinstance(item, list):
            children.extend(_node_from_item(key, element) for element in item)
        else:
            children.append(_node_from_item(key, item))
    return ImmutableNode(name, value, children, attributes)


def _node_from_item(name: str, item: Any) -> ImmutableNode:
    if isinstance(item, Mapping):
        return node_from_dict(item, name)
    return ImmutableNode(name, item)


def node_to_dict(node: ImmutableNode) -> Dict[str, Any]:
    """Convert a node's content to a nested dictionary.

    This is the inverse of ``node_from_dict``: children with the same name
    are collected in a list, leaf children without attributes become plain
    values.
    """
    result: Dict[str, Any] = {}
    if node.value is not None:
        result["_value"] = node.value
    for attr, value in node.attributes.items():
        result[f"@{attr}"] = value
    for child in node.children:
        child_data: Any
        if child.children or child.attributes:
            child_data = node_to_dict(child)
        else:
            child_data = child.value
        if child.name in result:
            existing = result[child.name]
            if isinstance(existing, list):
                existing.append(child_data)
            else:
                result[child.name] = [existing, child_data]
        else:
            result[child.name] = child_data
    return result


def build_node_from_string(from_string: str) -> ImmutableNode:
    """Build a node tree from a parenthesized string representation.

    The first element of each parenthesized group is the node's name, the
    remaining elements are its children. A ``name=value`` token creates a
    leaf node with a (string) value.

    Args:
        from_string: The tree string, e.g. ``"(config (db host=localhost) debug=true)"``.

    Returns:
        The root node.

    Example:
        ```python
        root = build_node_from_string("(config (db host=localhost port=5432))")
        root.children[0].children[1].value  # "5432"
        ```
    """
    if not from_string.strip().startswith("("):
        return _leaf_from_token(from_string.strip())
    data = OneOrMore(nested_expr()).parse_string(from_string)
    return build_node_from_list(data.as_list()[0])


def build_node_from_list(data: Union[str, List[Any]]) -> ImmutableNode:
    """Build a node tree from its nested list representation.

    Args:
        data: ``[name, child1, child2, ...]`` where children are tokens or
            nested lists.

    Returns:
        The root node.
    """
    if isinstance(data, list) and len(data) > 0:
        node = _leaf_from_token(data[0])
        return node.add_children(build_node_from_list(item) for item in data[1:])
    return _leaf_from_token(data)


def _leaf_from_token(token: str) -> ImmutableNode:
    if "=" in token:
        name, value = token.split("=", 1)
        return ImmutableNode(name, value)
    return ImmutableNode(token)


def build_dot(
    node: ImmutableNode,
    node_name_fn: Callable[[ImmutableNode], str] | None = None,
    **kwargs: Any,
) -> graphviz.Digraph:
    """Build a Graphviz Digraph for visualizing a node tree.

    Args:
        node: The root of the tree to draw.
        node_name_fn: Optional function producing node labels. Defaults to
            ``name`` or ``name=value`` for nodes with a value.
        **kwargs: Additional keyword arguments passed to graphviz.Digraph.

    Returns:
        A graphviz.Digraph object representing the tree.

    Note:
        Rendering requires a Graphviz system installation; building the
        graph and reading ``dot.source`` does not.
    """
    if node_name_fn is None:
        def node_name_fn(n: ImmutableNode) -> str:
            label = n.name if n.name is not None else "<root>"
            return label if n.value is None else f"{label}={n.value}"
    dot = graphviz.Digraph(**kwargs)
    ids: Dict[int, int] = {}
    for idx, current in enumerate(node.walk()):
        ids[id(current)] = idx
        dot.node(f"N_{idx:03}", node_name_fn(current))
    for current in node.walk():
        for child in current.children:
            dot.edge(f"N_{ids[id(current)]:03}", f"N_{ids[id(child)]:03}")
    return dot
