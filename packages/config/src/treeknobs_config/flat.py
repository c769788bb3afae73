"""Flat node structures on top of a plain key/value configuration source.

A flat configuration source stores properties under simple keys; a key
may hold a list of values. To make such a source accessible through the
hierarchical machinery it is presented as a tree of depth one: an unnamed
``FlatRootNode`` with one ``FlatLeafNode`` per value. Leaves with the same
name are distinguished by their index among the same-named siblings, and
leaf values are read from and written to the source.

Example:
    ```python
    source = MapConfigurationSource({"host": "localhost", "port": [80, 8080]})
    root = FlatRootNode.from_source(source)
    handler = FlatNodeHandler()
    handler.get_children_count(root, "port")  # 2
    ```
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, Dict, List, Protocol, Set, runtime_checkable

from treeknobs_common import Event, EventType, ListenerList

from .exceptions import UnsupportedOperationError
from .handler import NodeHandler

logger = logging.getLogger(__name__)


@runtime_checkable
class ConfigurationSource(Protocol):
    """A flat store of properties."""

    def get_property(self, key: str) -> Any: ...

    def set_property(self, key: str, value: Any) -> None: ...

    def add_property(self, key: str, value: Any) -> None: ...

    def clear_property(self, key: str) -> None: ...

    def contains_key(self, key: str) -> bool: ...

    def keys(self) -> List[str]: ...

    def is_empty(self) -> bool: ...

    def clear(self) -> None: ...

    def add_listener(self, listener: Callable[[Event], Any]) -> None: ...

    def remove_listener(self, listener: Callable[[Event], Any]) -> bool: ...


class MapConfigurationSource:
    """Configuration source backed by an ordered dict.

    A key holding several values stores them as a list. Listeners receive a
    ``SOURCE_CHANGED`` event after each change.
    """

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: Dict[str, Any] = dict(data) if data else {}
        self._listeners = ListenerList("source listeners")

    def add_listener(self, listener: Callable[[Event], Any]) -> None:
        self._listeners.add(listener)

    def remove_listener(self, listener: Callable[[Event], Any]) -> bool:
        return self._listeners.remove(listener)

    def get_property(self, key: str) -> Any:
        return self._data.get(key)

    def set_property(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._fire("set_property", key, value)

    def add_property(self, key: str, value: Any) -> None:
        """Add a value; an existing key turns into (or extends) a list."""
        if key in self._data:
            existing = self._data[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                self._data[key] = [existing, value]
        else:
            self._data[key] = value
        self._fire("add_property", key, value)

    def clear_property(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._fire("clear_property", key, None)

    def contains_key(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> List[str]:
        return list(self._data)

    def size(self) -> int:
        return len(self._data)

    def is_empty(self) -> bool:
        return not self._data

    def clear(self) -> None:
        self._data.clear()
        self._fire("clear", None, None)

    def _fire(self, operation: str, key: str | None, value: Any) -> None:
        self._listeners.fire(Event(
            type=EventType.SOURCE_CHANGED,
            topic="source",
            payload={"operation": operation, "key": key, "value": value},
            source=self,
        ))


def _values(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class FlatNode(ABC):
    """A node of a flat node structure."""

    @property
    @abstractmethod
    def name(self) -> str | None: ...

    @property
    @abstractmethod
    def parent(self) -> FlatNode | None: ...

    @abstractmethod
    def get_value(self) -> Any: ...

    @abstractmethod
    def set_value(self, value: Any) -> None: ...

    @abstractmethod
    def get_children(self, name: str | None = None) -> List[FlatNode]: ...

    def get_child(self, index: int) -> FlatNode:
        return self.get_children()[index]

    @abstractmethod
    def add_child(self, name: str) -> FlatNode: ...

    @abstractmethod
    def remove_child(self, child: FlatNode) -> None: ...


class FlatLeafNode(FlatNode):
    """A child of the flat root; represents one value of a property."""

    def __init__(self, parent: FlatRootNode, name: str) -> None:
        self._parent = parent
        self._name = name

    def __repr__(self) -> str:
        return f"FlatLeafNode({self._name!r}, index={self.value_index})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def parent(self) -> FlatRootNode:
        return self._parent

    @property
    def value_index(self) -> int:
        """Index of this node among the same-named children of its parent."""
        return self._parent.value_index(self)

    def get_value(self) -> Any:
        values = _values(self._parent.source.get_property(self._name))
        index = self.value_index
        return values[index] if index < len(values) else None

    def set_value(self, value: Any) -> None:
        """Write the value to the source at this node's position."""
        source = self._parent.source
        values = list(_values(source.get_property(self._name)))
        index = self.value_index
        if index < len(values):
            values[index] = value
            source.set_property(self._name, values if len(values) > 1 else values[0])
        else:
            source.add_property(self._name, value)

    def get_children(self, name: str | None = None) -> List[FlatNode]:
        return []

    def add_child(self, name: str) -> FlatNode:
        raise UnsupportedOperationError(
            "Flat leaf nodes cannot have children", context={"node": self._name}
        )

    def remove_child(self, child: FlatNode) -> None:
        raise UnsupportedOperationError(
            "Flat leaf nodes cannot have children", context={"node": self._name}
        )


class FlatRootNode(FlatNode):
    """The unnamed root of a flat node structure."""

    def __init__(self, source: ConfigurationSource) -> None:
        self._source = source
        self._children: List[FlatLeafNode] = []

    @classmethod
    def from_source(cls, source: ConfigurationSource) -> FlatRootNode:
        """Create a root with one child per value stored in ``source``."""
        root = cls(source)
        for key in source.keys():
            for _ in _values(source.get_property(key)):
                root.add_child(key)
        return root

    @property
    def source(self) -> ConfigurationSource:
        return self._source

    @property
    def name(self) -> None:
        return None

    @property
    def parent(self) -> None:
        return None

    def get_value(self) -> None:
        return None

    def set_value(self, value: Any) -> None:
        pass

    def get_children(self, name: str | None = None) -> List[FlatNode]:
        if name is None:
            return list(self._children)
        return [child for child in self._children if child.name == name]

    def add_child(self, name: str) -> FlatLeafNode:
        """Add a leaf; the source is only changed once a value is set."""
        child = FlatLeafNode(self, name)
        self._children.append(child)
        return child

    def remove_child(self, child: FlatNode) -> None:
        """Remove a leaf and its value from the source."""
        if not any(c is child for c in self._children):
            return
        values = list(_values(self._source.get_property(child.name)))
        index = self.value_index(child)
        self._children = [c for c in self._children if c is not child]
        if index < len(values):
            del values[index]
            if not values:
                self._source.clear_property(child.name)
            else:
                self._source.set_property(child.name, values if len(values) > 1 else values[0])

    def value_index(self, child: FlatNode) -> int:
        index = 0
        for current in self._children:
            if current is child:
                return index
            if current.name == child.name:
                index += 1
        return -1


class FlatNodeHandler(NodeHandler[FlatNode]):
    """Node handler for flat node structures.

    Flat nodes have no attributes: attribute queries return nothing,
    adding or setting attribute values raises ``UnsupportedOperationError``.
    While the handler itself writes to the source, ``is_internal_update``
    returns True so that source listeners can ignore these changes.
    """

    def __init__(self) -> None:
        self._local = threading.local()

    def is_internal_update(self) -> bool:
        return getattr(self._local, "internal", False)

    @contextmanager
    def _internal_update(self) -> Iterator[None]:
        previous = self.is_internal_update()
        self._local.internal = True
        try:
            yield
        finally:
            self._local.internal = previous

    def node_name(self, node: FlatNode) -> str | None:
        return node.name

    def get_value(self, node: FlatNode) -> Any:
        return node.get_value()

    def get_parent(self, node: FlatNode) -> FlatNode | None:
        return node.parent

    def get_children(self, node: FlatNode, name: str | None = None) -> List[FlatNode]:
        return node.get_children(name)

    def get_child(self, node: FlatNode, index: int) -> FlatNode:
        return node.get_child(index)

    def add_child(self, node: FlatNode, name: str) -> FlatNode:
        return node.add_child(name)

    def remove_child(self, node: FlatNode, child: FlatNode) -> None:
        with self._internal_update():
            node.remove_child(child)

    def set_value(self, node: FlatNode, value: Any) -> None:
        with self._internal_update():
            node.set_value(value)

    def get_attributes(self, node: FlatNode) -> Set[str]:
        return set()

    def get_attribute_value(self, node: FlatNode, name: str) -> None:
        return None

    def has_attributes(self, node: FlatNode) -> bool:
        return False

    def add_attribute_value(self, node: FlatNode, name: str, value: Any) -> None:
        raise UnsupportedOperationError(
            "Flat nodes do not support attributes", context={"attribute": name}
        )

    def set_attribute_value(self, node: FlatNode, name: str, value: Any) -> None:
        raise UnsupportedOperationError(
            "Flat nodes do not support attributes", context={"attribute": name}
        )

    def remove_attribute(self, node: FlatNode, name: str) -> None:
        logger.debug("Ignoring removal of attribute %s on a flat node", name)


__all__ = [
    "ConfigurationSource",
    "FlatLeafNode",
    "FlatNode",
    "FlatNodeHandler",
    "FlatRootNode",
    "MapConfigurationSource",
]
