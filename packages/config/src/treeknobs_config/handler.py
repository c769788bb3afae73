"""Node handlers: uniform access to different node representations.

A ``NodeHandler`` knows how to navigate and manipulate one kind of node.
Algorithms such as key resolution in an expression engine are written
against this interface only, so they work for the immutable in-memory tree
as well as for flat, source-backed node structures.

Implementations in this package:

- ``TreeData``: a read-only snapshot of an in-memory tree with a parent index.
- ``InMemoryNodeHandler``: a handler bound to an ``InMemoryNodeModel``;
  mutations become copy-on-write updates of the model.
- ``FlatNodeHandler`` (in ``treeknobs_config.flat``): flat node structures
  stored in a configuration source.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Generic, List, Set, TypeVar

from .exceptions import InvalidArgumentError, UnsupportedOperationError
from .node import ImmutableNode

if TYPE_CHECKING:
    from .model import InMemoryNodeModel

T = TypeVar("T")


class NodeHandler(ABC, Generic[T]):
    """Capability interface for traversing and updating nodes of type ``T``."""

    @abstractmethod
    def node_name(self, node: T) -> str | None:
        """Return the name of the node (None for an unnamed root)."""

    @abstractmethod
    def get_value(self, node: T) -> Any:
        """Return the value of the node."""

    @abstractmethod
    def get_parent(self, node: T) -> T | None:
        """Return the parent of the node, None for the root."""

    @abstractmethod
    def get_children(self, node: T, name: str | None = None) -> List[T]:
        """Return the children of a node, optionally only those with ``name``."""

    def get_children_count(self, node: T, name: str | None = None) -> int:
        """Return the number of (named) children of a node."""
        return len(self.get_children(node, name))

    def get_child(self, node: T, index: int) -> T:
        """Return the child of a node at the given index."""
        return self.get_children(node)[index]

    def index_of_child(self, parent: T, child: T) -> int:
        """Return the index of ``child`` in the children of ``parent``, -1 if absent."""
        for idx, current in enumerate(self.get_children(parent)):
            if current is child:
                return idx
        return -1

    @abstractmethod
    def get_attributes(self, node: T) -> Set[str]:
        """Return the names of the attributes of the node."""

    @abstractmethod
    def get_attribute_value(self, node: T, name: str) -> Any:
        """Return the value of an attribute, None if it does not exist."""

    def has_attributes(self, node: T) -> bool:
        return len(self.get_attributes(node)) > 0

    def is_defined(self, node: T) -> bool:
        """True if the node has a value, children or attributes."""
        return (
            self.get_value(node) is not None
            or self.get_children_count(node) > 0
            or self.has_attributes(node)
        )

    @abstractmethod
    def add_child(self, node: T, name: str) -> T:
        """Add a new child with the given name and return it."""

    @abstractmethod
    def remove_child(self, node: T, child: T) -> None:
        """Remove a child from a node."""

    @abstractmethod
    def set_value(self, node: T, value: Any) -> Any:
        """Set the value of a node."""

    @abstractmethod
    def add_attribute_value(self, node: T, name: str, value: Any) -> Any:
        """Add a value to an attribute (an existing value becomes a list)."""

    @abstractmethod
    def set_attribute_value(self, node: T, name: str, value: Any) -> Any:
        """Set the value of an attribute."""

    @abstractmethod
    def remove_attribute(self, node: T, name: str) -> Any:
        """Remove an attribute; removing a missing attribute is a no-op."""


class _ImmutableNodeQueries(NodeHandler[ImmutableNode]):
    """Query operations shared by the handlers for immutable nodes."""

    def node_name(self, node: ImmutableNode) -> str | None:
        return node.name

    def get_value(self, node: ImmutableNode) -> Any:
        return node.value

    def get_children(
        self, node: ImmutableNode, name: str | None = None
    ) -> List[ImmutableNode]:
        if name is None:
            return list(node.children)
        return [child for child in node.children if child.name == name]

    def get_children_count(self, node: ImmutableNode, name: str | None = None) -> int:
        if name is None:
            return len(node.children)
        return sum(1 for child in node.children if child.name == name)

    def get_child(self, node: ImmutableNode, index: int) -> ImmutableNode:
        return node.children[index]

    def get_attributes(self, node: ImmutableNode) -> Set[str]:
        return set(node.attributes.keys())

    def get_attribute_value(self, node: ImmutableNode, name: str) -> Any:
        return node.attributes.get(name)

    def has_attributes(self, node: ImmutableNode) -> bool:
        return len(node.attributes) > 0

    def is_defined(self, node: ImmutableNode) -> bool:
        return node.is_defined()


class TreeData(_ImmutableNodeQueries):
    """Read-only snapshot of an in-memory node tree.

    Holds the root node and an index mapping every node to its parent. A
    snapshot never changes; updating a model means creating a new
    ``TreeData`` for the new root.
    """

    def __init__(self, root: ImmutableNode) -> None:
        self._root = root
        self._parents: Dict[int, ImmutableNode] = {}
        self._depths: Dict[int, int] = {id(root): 0}
        stack = [root]
        while stack:
            node = stack.pop()
            depth = self._depths[id(node)] + 1
            for child in node.children:
                self._parents[id(child)] = node
                self._depths[id(child)] = depth
                stack.append(child)

    @property
    def root(self) -> ImmutableNode:
        return self._root

    def contains(self, node: ImmutableNode) -> bool:
        """True if the node is part of this snapshot."""
        return node is self._root or id(node) in self._parents

    def get_parent(self, node: ImmutableNode) -> ImmutableNode | None:
        if node is self._root:
            return None
        parent = self._parents.get(id(node))
        if parent is None:
            raise InvalidArgumentError(
                "Cannot determine parent! Node is not part of this tree.",
                context={"node": repr(node)},
            )
        return parent

    def get_depth(self, node: ImmutableNode) -> int:
        """Return the number of hops from the root to the node."""
        if not self.contains(node):
            raise InvalidArgumentError(
                "Node is not part of this tree.", context={"node": repr(node)}
            )
        return self._depths[id(node)]

    def _read_only(self, operation: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            f"{operation}() is not supported on a read-only tree snapshot",
            context={"operation": operation},
        )

    def add_child(self, node: ImmutableNode, name: str) -> ImmutableNode:
        raise self._read_only("add_child")

    def remove_child(self, node: ImmutableNode, child: ImmutableNode) -> None:
        raise self._read_only("remove_child")

    def set_value(self, node: ImmutableNode, value: Any) -> Any:
        raise self._read_only("set_value")

    def add_attribute_value(self, node: ImmutableNode, name: str, value: Any) -> Any:
        raise self._read_only("add_attribute_value")

    def set_attribute_value(self, node: ImmutableNode, name: str, value: Any) -> Any:
        raise self._read_only("set_attribute_value")

    def remove_attribute(self, node: ImmutableNode, name: str) -> Any:
        raise self._read_only("remove_attribute")


class InMemoryNodeHandler(_ImmutableNodeQueries):
    """Node handler bound to an ``InMemoryNodeModel``.

    Queries run against the model's current snapshot. Mutations replace the
    passed in node in the model with an updated copy and return the copy;
    the passed in node object itself never changes.
    """

    def __init__(self, model: InMemoryNodeModel) -> None:
        self._model = model

    def get_parent(self, node: ImmutableNode) -> ImmutableNode | None:
        return self._model.get_tree_data().get_parent(node)

    def add_child(self, node: ImmutableNode, name: str) -> ImmutableNode:
        child = ImmutableNode(name)
        self._model.replace_node(node, node.add_child(child))
        return child

    def remove_child(self, node: ImmutableNode, child: ImmutableNode) -> None:
        self._model.replace_node(node, node.remove_child(child))

    def set_value(self, node: ImmutableNode, value: Any) -> ImmutableNode:
        return self._model.replace_node(node, node.set_value(value))

    def add_attribute_value(
        self, node: ImmutableNode, name: str, value: Any
    ) -> ImmutableNode:
        return self._model.replace_node(
            node, node.set_attribute(name, combine_values(node.attributes.get(name), value))
        )

    def set_attribute_value(
        self, node: ImmutableNode, name: str, value: Any
    ) -> ImmutableNode:
        return self._model.replace_node(node, node.set_attribute(name, value))

    def remove_attribute(self, node: ImmutableNode, name: str) -> ImmutableNode:
        if name not in node.attributes:
            return node
        return self._model.replace_node(node, node.remove_attribute(name))


class DelegatingNodeHandler(NodeHandler[T]):
    """Handler for a sub-tree whose root is treated as having no parent.

    Used by tracked node models: all operations are delegated to the handler
    of the backing model, only ``get_parent`` of the sub-tree root is cut.
    """

    def __init__(self, root: T, delegate: NodeHandler[T]) -> None:
        self._root = root
        self._delegate = delegate

    @property
    def root(self) -> T:
        return self._root

    def node_name(self, node: T) -> str | None:
        return self._delegate.node_name(node)

    def get_value(self, node: T) -> Any:
        return self._delegate.get_value(node)

    def get_parent(self, node: T) -> T | None:
        if node is self._root:
            return None
        return self._delegate.get_parent(node)

    def get_children(self, node: T, name: str | None = None) -> List[T]:
        return self._delegate.get_children(node, name)

    def get_children_count(self, node: T, name: str | None = None) -> int:
        return self._delegate.get_children_count(node, name)

    def get_child(self, node: T, index: int) -> T:
        return self._delegate.get_child(node, index)

    def get_attributes(self, node: T) -> Set[str]:
        return self._delegate.get_attributes(node)

    def get_attribute_value(self, node: T, name: str) -> Any:
        return self._delegate.get_attribute_value(node, name)

    def is_defined(self, node: T) -> bool:
        return self._delegate.is_defined(node)

    def add_child(self, node: T, name: str) -> T:
        return self._delegate.add_child(node, name)

    def remove_child(self, node: T, child: T) -> None:
        self._delegate.remove_child(node, child)

    def set_value(self, node: T, value: Any) -> Any:
        return self._delegate.set_value(node, value)

    def add_attribute_value(self, node: T, name: str, value: Any) -> Any:
        return self._delegate.add_attribute_value(node, name, value)

    def set_attribute_value(self, node: T, name: str, value: Any) -> Any:
        return self._delegate.set_attribute_value(node, name, value)

    def remove_attribute(self, node: T, name: str) -> Any:
        return self._delegate.remove_attribute(node, name)


def combine_values(existing: Any, value: Any) -> Any:
    """Combine an existing (attribute) value with an additional one."""
    if existing is None:
        return value
    if isinstance(existing, list):
        return existing + [value]
    return [existing, value]
