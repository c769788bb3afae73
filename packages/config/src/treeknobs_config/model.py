"""Node models: owners of a configuration node tree.

A node model owns exactly one root node at any time and offers the
structural operations configurations are built on: adding, setting and
clearing properties addressed by keys. Keys are resolved by an expression
engine passed in by the caller.

``InMemoryNodeModel`` stores a tree of ``ImmutableNode`` objects. Updates
never modify nodes; a transaction collects all changes of an operation,
copies the changed nodes and their ancestors and finally swaps in the new
root. Anyone holding an older root keeps a complete, consistent snapshot.

The model also keeps a registry of *tracked nodes*: nodes addressed through
a ``NodeSelector`` by sub-configurations. After every root swap each tracked
selector is evaluated again. If it no longer selects a unique node, the
tracked node is detached: every view on it continues to work on a private
copy of the last node it saw.

Example:
    ```python
    model = InMemoryNodeModel(node_from_dict({"db": {"host": "localhost"}}))
    model.add_property("db.port", [5432], DEFAULT_EXPRESSION_ENGINE)

    selector = NodeSelector("db")
    model.track_node(selector, DEFAULT_EXPRESSION_ENGINE)
    db = model.get_tracked_node(selector)
    ```
"""

from __future__ import annotations

import logging
import weakref
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any, Dict, List, Set

from treeknobs_common import Event, EventType, ListenerList

from .exceptions import ConfigurationRuntimeError
from .expression import ExpressionEngine, NodeAddData, QueryResult
from .handler import InMemoryNodeHandler, NodeHandler, TreeData, combine_values
from .node import ImmutableNode
from .selector import NodeSelector
from .sync import ReadWriteSynchronizer, Synchronizer

if TYPE_CHECKING:
    from .tracked import TrackedNodeModel

logger = logging.getLogger(__name__)


class NodeModel(ABC):
    """Interface of a model owning a tree of configuration nodes."""

    @property
    @abstractmethod
    def synchronizer(self) -> Synchronizer:
        """The synchronizer guarding this model."""

    @abstractmethod
    def get_root_node(self) -> Any:
        """Return the current root node."""

    @abstractmethod
    def set_root_node(self, node: Any) -> None:
        """Replace the whole tree by a new root node."""

    @abstractmethod
    def get_node_handler(self) -> NodeHandler:
        """Return a handler for the nodes of this model."""

    @abstractmethod
    def add_property(self, key: str, values: Iterable[Any], resolver: ExpressionEngine) -> None:
        """Add new nodes (or attribute values) for ``key``, one per value."""

    @abstractmethod
    def add_nodes(self, key: str | None, nodes: Iterable[Any], resolver: ExpressionEngine) -> None:
        """Add existing nodes below the node selected (or created) by ``key``."""

    @abstractmethod
    def set_property(self, key: str, values: Iterable[Any], resolver: ExpressionEngine) -> None:
        """Set the values of ``key``, adding or removing nodes as needed."""

    @abstractmethod
    def clear_tree(self, key: str | None, resolver: ExpressionEngine) -> List[QueryResult]:
        """Remove the nodes selected by ``key`` with all their children."""

    @abstractmethod
    def clear_property(self, key: str, resolver: ExpressionEngine) -> None:
        """Remove the values of the nodes selected by ``key``."""

    @abstractmethod
    def clear(self, resolver: ExpressionEngine) -> None:
        """Remove all content of this model."""

    @abstractmethod
    def get_in_memory_representation(self) -> Any:
        """Return the root of the model's content as an in-memory node."""


class _NodeOperations:
    """Pending changes of one node in a transaction."""

    __slots__ = (
        "node", "depth", "added", "removed", "replaced", "value", "value_set",
        "set_attributes", "removed_attributes", "cleared", "replacement",
    )

    def __init__(self, node: ImmutableNode, depth: int) -> None:
        self.node = node
        self.depth = depth
        self.added: List[ImmutableNode] = []
        self.removed: Set[int] = set()
        self.replaced: Dict[int, ImmutableNode] = {}
        self.value: Any = None
        self.value_set = False
        self.set_attributes: Dict[str, Any] = {}
        self.removed_attributes: Set[str] = set()
        self.cleared = False
        self.replacement: ImmutableNode | None = None

    def apply(self) -> ImmutableNode:
        if self.replacement is not None:
            return self.replacement
        node = self.node
        if self.cleared:
            children: List[ImmutableNode] = []
            attributes: Dict[str, Any] = {}
        else:
            children = [
                self.replaced.get(id(child), child)
                for child in node.children
                if id(child) not in self.removed
            ]
            attributes = dict(node.attributes)
        children.extend(self.added)
        attributes.update(self.set_attributes)
        for name in self.removed_attributes:
            attributes.pop(name, None)
        if self.value_set:
            value = self.value
        else:
            value = None if self.cleared else node.value
        return ImmutableNode(node.name, value, children, attributes)


class _ModelTransaction:
    """Collects changes on the nodes of one snapshot and applies them at once.

    ``commit`` processes the changed nodes from the deepest level upwards.
    Each new node version is registered as a child replacement at its
    parent, so only the changed paths up to the root are copied.
    """

    def __init__(self, tree: TreeData) -> None:
        self._tree = tree
        self._operations: Dict[int, _NodeOperations] = {}

    def _ops(self, node: ImmutableNode) -> _NodeOperations:
        ops = self._operations.get(id(node))
        if ops is None:
            if not self._tree.contains(node):
                raise ConfigurationRuntimeError(
                    "Node is not part of the current tree", context={"node": repr(node)}
                )
            ops = _NodeOperations(node, self._tree.get_depth(node))
            self._operations[id(node)] = ops
        return ops

    def add_children(self, parent: ImmutableNode, children: Iterable[ImmutableNode]) -> None:
        self._ops(parent).added.extend(children)

    def remove_node(self, node: ImmutableNode) -> None:
        parent = self._tree.get_parent(node)
        if parent is None:
            self._ops(node).cleared = True
        else:
            self._ops(parent).removed.add(id(node))

    def clear_node(self, node: ImmutableNode) -> None:
        self._ops(node).cleared = True

    def replace_node(self, node: ImmutableNode, replacement: ImmutableNode) -> None:
        self._ops(node).replacement = replacement

    def set_value(self, node: ImmutableNode, value: Any) -> None:
        ops = self._ops(node)
        ops.value = value
        ops.value_set = True

    def set_attribute(self, node: ImmutableNode, name: str, value: Any) -> None:
        ops = self._ops(node)
        ops.set_attributes[name] = value
        ops.removed_attributes.discard(name)

    def add_attribute_value(self, node: ImmutableNode, name: str, value: Any) -> None:
        ops = self._ops(node)
        if name in ops.set_attributes:
            existing = ops.set_attributes[name]
        elif name in ops.removed_attributes:
            existing = None
        else:
            existing = node.attributes.get(name)
        self.set_attribute(node, name, combine_values(existing, value))

    def remove_attribute(self, node: ImmutableNode, name: str) -> None:
        ops = self._ops(node)
        ops.set_attributes.pop(name, None)
        ops.removed_attributes.add(name)

    def commit(self) -> ImmutableNode:
        """Apply all changes and return the new root node."""
        new_root = self._tree.root
        pending = dict(self._operations)
        while pending:
            depth = max(ops.depth for ops in pending.values())
            for ops in [ops for ops in pending.values() if ops.depth == depth]:
                del pending[id(ops.node)]
                new_node = ops.apply()
                parent = self._tree.get_parent(ops.node)
                if parent is None:
                    new_root = new_node
                    continue
                parent_ops = pending.get(id(parent))
                if parent_ops is None:
                    parent_ops = self._ops(parent)
                    pending[id(parent)] = parent_ops
                parent_ops.replaced[id(ops.node)] = new_node
        return new_root


def _create_path(
    names: Sequence[str],
    children: Iterable[ImmutableNode] = (),
    attributes: Dict[str, Any] | None = None,
) -> ImmutableNode:
    """Create a chain of nested nodes; the innermost gets children and attributes."""
    node = ImmutableNode(names[-1], children=children, attributes=attributes)
    for name in reversed(names[:-1]):
        node = ImmutableNode(name, children=(node,))
    return node


def _copy_tree(node: ImmutableNode) -> ImmutableNode:
    return ImmutableNode(
        node.name, node.value, [_copy_tree(c) for c in node.children], node.attributes
    )


def _distinct_nodes(nodes: Iterable[ImmutableNode], tree: TreeData | None) -> List[ImmutableNode]:
    """Copy nodes that would appear twice in a tree.

    A node is copied if it is already part of ``tree``, if it or one of its
    descendants occurs in an earlier node of ``nodes``, or if it contains
    a node more than once.
    """
    seen: Set[int] = set()
    result = []
    for node in nodes:
        ids = [id(n) for n in node.walk()]
        if (
            len(set(ids)) != len(ids)
            or not seen.isdisjoint(ids)
            or (tree is not None and any(tree.contains(n) for n in node.walk()))
        ):
            node = _copy_tree(node)
            ids = [id(n) for n in node.walk()]
        seen.update(ids)
        result.append(node)
    return result


class _TrackedNodeData:
    """Registry entry of a tracked selector."""

    __slots__ = ("node", "last_node", "count", "resolver", "models")

    def __init__(self, node: ImmutableNode, resolver: ExpressionEngine) -> None:
        self.node: ImmutableNode | None = node
        self.last_node = node
        self.count = 1
        self.resolver = resolver
        self.models: weakref.WeakSet[TrackedNodeModel] = weakref.WeakSet()

    @property
    def detached(self) -> bool:
        return self.node is None


class InMemoryNodeModel(NodeModel):
    """Node model storing an immutable node tree in memory.

    Every operation is performed under the model's synchronizer: queries in
    read mode, updates and tracking operations in write mode. Operations
    accept an optional ``selector``; the key is then interpreted relative to
    the tracked node of this selector.

    Args:
        root: The initial root node; an empty unnamed node if None.
        synchronizer: Synchronizer to use; a new ``ReadWriteSynchronizer``
            if None. Tracked node models created from this model share it.
    """

    def __init__(
        self,
        root: ImmutableNode | None = None,
        synchronizer: Synchronizer | None = None,
    ) -> None:
        self._synchronizer = (
            synchronizer if synchronizer is not None else ReadWriteSynchronizer()
        )
        self._tree = TreeData(
            _distinct_nodes([root], None)[0] if root is not None else ImmutableNode()
        )
        self._tracked: Dict[NodeSelector, _TrackedNodeData] = {}
        self._released: deque[NodeSelector] = deque()
        self._listeners = ListenerList("model listeners")
        self._handler = InMemoryNodeHandler(self)

    @property
    def synchronizer(self) -> Synchronizer:
        return self._synchronizer

    def add_listener(self, listener: Callable[[Event], Any]) -> None:
        """Register a listener notified after every change of the tree."""
        self._listeners.add(listener)

    def remove_listener(self, listener: Callable[[Event], Any]) -> bool:
        return self._listeners.remove(listener)

    def get_tree_data(self) -> TreeData:
        """Return the current immutable snapshot of the tree."""
        with self._synchronizer.read_locked():
            return self._tree

    def get_root_node(self) -> ImmutableNode:
        return self.get_tree_data().root

    def get_in_memory_representation(self) -> ImmutableNode:
        return self.get_root_node()

    def get_node_handler(self) -> InMemoryNodeHandler:
        return self._handler

    # ==================== Updates ====================

    def set_root_node(self, node: ImmutableNode | None) -> None:
        root = _distinct_nodes([node], None)[0] if node is not None else ImmutableNode()
        with self._synchronizer.write_locked():
            self._apply_releases()
            self._install(root)
        self._fire(EventType.ROOT_REPLACED, None, None)

    def add_property(
        self,
        key: str,
        values: Iterable[Any],
        resolver: ExpressionEngine,
        selector: NodeSelector | None = None,
    ) -> None:
        values = list(values)
        if not values:
            return

        def operation(tx: _ModelTransaction, root: ImmutableNode, tree: TreeData) -> None:
            self._add_values(tx, resolver.prepare_add(root, key, tree), values)

        self._execute(EventType.ADD_PROPERTY, key, selector, operation, values=values)

    def add_nodes(
        self,
        key: str | None,
        nodes: Iterable[ImmutableNode],
        resolver: ExpressionEngine,
        selector: NodeSelector | None = None,
    ) -> None:
        nodes = list(nodes)
        if not nodes:
            return

        def operation(tx: _ModelTransaction, root: ImmutableNode, tree: TreeData) -> None:
            results = resolver.query(root, key, tree)
            added = _distinct_nodes(nodes, tree)
            if len(results) == 1 and not results[0].is_attribute_result:
                tx.add_children(results[0].node, added)
                return
            if results:
                raise ConfigurationRuntimeError(
                    "Cannot add nodes: key does not select a single node",
                    context={"key": key, "matches": len(results)},
                )
            add = resolver.prepare_add(root, key or "", tree)
            if add.is_attribute:
                raise ConfigurationRuntimeError(
                    "Cannot add nodes to an attribute key", context={"key": key}
                )
            tx.add_children(
                add.parent, [_create_path(add.path_nodes + (add.new_node_name,), added)]
            )

        self._execute(EventType.ADD_NODES, key, selector, operation, count=len(nodes))

    def set_property(
        self,
        key: str,
        values: Iterable[Any],
        resolver: ExpressionEngine,
        selector: NodeSelector | None = None,
    ) -> None:
        values = list(values)

        def operation(tx: _ModelTransaction, root: ImmutableNode, tree: TreeData) -> None:
            results = resolver.query(root, key, tree)
            for result, value in zip(results, values):
                if result.is_attribute_result:
                    tx.set_attribute(result.node, result.attribute_name, value)
                else:
                    tx.set_value(result.node, value)
            if len(values) > len(results):
                self._add_values(
                    tx, resolver.prepare_add(root, key, tree), values[len(results):]
                )
            for result in results[len(values):]:
                self._clear_result(tx, result, root)

        self._execute(EventType.SET_PROPERTY, key, selector, operation, values=values)

    def clear_tree(
        self,
        key: str | None,
        resolver: ExpressionEngine,
        selector: NodeSelector | None = None,
    ) -> List[QueryResult]:
        def operation(
            tx: _ModelTransaction, root: ImmutableNode, tree: TreeData
        ) -> List[QueryResult]:
            results = resolver.query(root, key, tree)
            for result in results:
                if result.is_attribute_result:
                    tx.remove_attribute(result.node, result.attribute_name)
                elif result.node is root:
                    tx.clear_node(root)
                else:
                    tx.remove_node(result.node)
            return results

        return self._execute(EventType.CLEAR_TREE, key, selector, operation)

    def clear_property(
        self,
        key: str,
        resolver: ExpressionEngine,
        selector: NodeSelector | None = None,
    ) -> None:
        def operation(tx: _ModelTransaction, root: ImmutableNode, tree: TreeData) -> None:
            for result in resolver.query(root, key, tree):
                self._clear_result(tx, result, root)

        self._execute(EventType.CLEAR_PROPERTY, key, selector, operation)

    def clear(
        self, resolver: ExpressionEngine, selector: NodeSelector | None = None
    ) -> None:
        """Remove all content; a tracked node keeps its name and stays tracked."""

        def operation(tx: _ModelTransaction, root: ImmutableNode, tree: TreeData) -> None:
            tx.clear_node(root)

        self._execute(EventType.CLEAR, None, selector, operation)

    def replace_node(self, node: ImmutableNode, replacement: ImmutableNode) -> ImmutableNode:
        """Replace a node of the current tree by another node.

        Raises:
            ConfigurationRuntimeError: If ``node`` is not part of the current tree.
        """

        def operation(tx: _ModelTransaction, root: ImmutableNode, tree: TreeData) -> None:
            tx.replace_node(node, replacement)

        self._execute(EventType.NODE_REPLACED, None, None, operation)
        return replacement

    @staticmethod
    def _add_values(tx: _ModelTransaction, add: NodeAddData, values: List[Any]) -> None:
        if add.is_attribute:
            if add.path_nodes:
                value = values[0] if len(values) == 1 else list(values)
                tx.add_children(
                    add.parent,
                    [_create_path(add.path_nodes, attributes={add.new_node_name: value})],
                )
            else:
                for value in values:
                    tx.add_attribute_value(add.parent, add.new_node_name, value)
            return
        new_nodes = [ImmutableNode(add.new_node_name, value) for value in values]
        if add.path_nodes:
            tx.add_children(add.parent, [_create_path(add.path_nodes, new_nodes)])
        else:
            tx.add_children(add.parent, new_nodes)

    @staticmethod
    def _clear_result(tx: _ModelTransaction, result: QueryResult, root: ImmutableNode) -> None:
        node = result.node
        if result.is_attribute_result:
            tx.remove_attribute(node, result.attribute_name)
        elif node.children or node.attributes or node is root:
            tx.set_value(node, None)
        else:
            tx.remove_node(node)

    def _execute(
        self,
        event_type: EventType,
        key: str | None,
        selector: NodeSelector | None,
        operation: Callable[[_ModelTransaction, ImmutableNode, TreeData], Any],
        **payload: Any,
    ) -> Any:
        """Run an operation in a transaction and install the resulting tree."""
        with self._synchronizer.write_locked():
            self._apply_releases()
            tree = self._tree
            root = tree.root if selector is None else self._linked_tracked_node(selector)
            tx = _ModelTransaction(tree)
            result = operation(tx, root, tree)
            new_root = tx.commit()
            changed = new_root is not tree.root
            if changed:
                self._install(new_root)
        if changed:
            self._fire(event_type, key, selector, **payload)
        return result

    def _install(self, root: ImmutableNode) -> None:
        """Swap in a new root and re-evaluate the tracked selectors."""
        self._tree = TreeData(root)
        for selector, data in self._tracked.items():
            if data.detached:
                continue
            node = selector.select(root, data.resolver, self._tree)
            if node is None:
                self._detach(selector, data, data.node)
            else:
                data.node = node
                data.last_node = node

    def _fire(
        self, event_type: EventType, key: str | None, selector: NodeSelector | None, **payload: Any
    ) -> None:
        self._listeners.fire(Event(
            type=event_type,
            topic="model",
            payload={"key": key, "selector": selector.key if selector else None, **payload},
            source=self,
        ))

    # ==================== Tracked nodes ====================

    def track_node(self, selector: NodeSelector, resolver: ExpressionEngine) -> ImmutableNode:
        """Start tracking the node selected by ``selector``.

        Tracking the same (equal) selector again increments its reference
        count. If the selector's node has been detached, tracking it again
        links the selector to the node it selects now; views that were
        detached before stay detached.

        Returns:
            The tracked node.

        Raises:
            ConfigurationRuntimeError: If the selector does not select a
                single node.
        """
        with self._synchronizer.write_locked():
            self._apply_releases()
            data = self._tracked.get(selector)
            if data is not None and not data.detached:
                data.count += 1
                logger.debug("Tracking %s, reference count %d", selector, data.count)
                return data.node
            node = selector.select(self._tree.root, resolver, self._tree)
            if node is None:
                raise ConfigurationRuntimeError(
                    f"Selector does not select a unique node: {selector.key}",
                    context={"selector": selector.key},
                )
            if data is None:
                self._tracked[selector] = _TrackedNodeData(node, resolver)
                logger.debug("Tracking %s", selector)
            else:
                data.node = node
                data.last_node = node
                data.count += 1
                logger.debug("Tracking %s again after detach", selector)
            return node

    def track_child_nodes(self, key: str | None, resolver: ExpressionEngine) -> List[NodeSelector]:
        """Track all nodes selected by ``key`` with one selector each.

        The selectors use canonical keys (with indices) so that each of them
        selects exactly one node.
        """
        with self._synchronizer.write_locked():
            tree = self._tree
            selectors = [
                NodeSelector(resolver.canonical_key(result.node, None, tree))
                for result in resolver.query(tree.root, key, tree)
                if not result.is_attribute_result
            ]
            for selector in selectors:
                self.track_node(selector, resolver)
            return selectors

    def untrack_node(
        self, selector: NodeSelector, tracked_model: TrackedNodeModel | None = None
    ) -> None:
        """Release one reference to a tracked selector.

        Raises:
            ConfigurationRuntimeError: If the selector is not tracked.
        """
        with self._synchronizer.write_locked():
            self._apply_releases()
            self._untrack(self._tracked_data(selector), selector, tracked_model)

    def release_tracked_node(self, selector: NodeSelector) -> None:
        """Schedule one reference to a tracked selector for release.

        Unlike ``untrack_node`` this does not acquire the lock, so it can be
        called from a finalizer; the release is applied by the next
        operation on the model that reads or changes tracked selectors.
        """
        self._released.append(selector)

    def get_tracked_node(self, selector: NodeSelector) -> ImmutableNode:
        """Return the tracked node (the last known node if detached)."""
        with self._synchronizer.read_locked():
            data = self._tracked_data(selector)
            return data.last_node if data.detached else data.node

    def is_tracked_node_detached(self, selector: NodeSelector) -> bool:
        with self._synchronizer.read_locked():
            return self._tracked_data(selector).detached

    def get_tracking_count(self, selector: NodeSelector) -> int:
        """Return the reference count of a selector, 0 if it is not tracked."""
        self._apply_releases()
        with self._synchronizer.read_locked():
            data = self._tracked.get(selector)
            return data.count if data is not None else 0

    def tracked_selectors(self) -> List[NodeSelector]:
        self._apply_releases()
        with self._synchronizer.read_locked():
            return list(self._tracked)

    def replace_tracked_node(self, selector: NodeSelector, node: ImmutableNode) -> None:
        """Detach a tracked selector, giving all its views ``node`` as new root."""
        with self._synchronizer.write_locked():
            self._apply_releases()
            data = self._tracked_data(selector)
            self._detach(selector, data, node)
            data.last_node = node

    def attach_tracked_model(
        self, selector: NodeSelector, model: TrackedNodeModel
    ) -> ImmutableNode | None:
        """Register a tracked node model to be detached with its selector.

        Returns:
            None if the selector's node is linked, otherwise the last known
            node the model has to continue with.
        """
        with self._synchronizer.write_locked():
            data = self._tracked_data(selector)
            if data.detached:
                return data.last_node
            data.models.add(model)
            return None

    def _tracked_data(self, selector: NodeSelector) -> _TrackedNodeData:
        data = self._tracked.get(selector)
        if data is None:
            raise ConfigurationRuntimeError(
                f"No tracked node found: {selector.key}", context={"selector": selector.key}
            )
        return data

    def _untrack(
        self,
        data: _TrackedNodeData,
        selector: NodeSelector,
        tracked_model: TrackedNodeModel | None,
    ) -> None:
        data.count -= 1
        if tracked_model is not None:
            data.models.discard(tracked_model)
        if data.count <= 0:
            del self._tracked[selector]
            logger.debug("Stopped tracking %s", selector)
        else:
            logger.debug("Untracked %s, reference count %d", selector, data.count)

    def _apply_releases(self) -> None:
        """Untrack the selectors scheduled by ``release_tracked_node``."""
        if not self._released:
            return
        with self._synchronizer.write_locked():
            while self._released:
                selector = self._released.popleft()
                data = self._tracked.get(selector)
                if data is None:
                    logger.warning("Released selector %s is not tracked", selector)
                    continue
                self._untrack(data, selector, None)

    def _linked_tracked_node(self, selector: NodeSelector) -> ImmutableNode:
        data = self._tracked_data(selector)
        if data.detached:
            raise ConfigurationRuntimeError(
                f"Tracked node is detached: {selector.key}", context={"selector": selector.key}
            )
        return data.node

    def _detach(
        self, selector: NodeSelector, data: _TrackedNodeData, root: ImmutableNode
    ) -> None:
        for model in list(data.models):
            model.detach(root)
        data.models.clear()
        data.last_node = data.node if data.node is not None else data.last_node
        data.node = None
        logger.debug("Tracked node %s detached", selector)


__all__ = ["InMemoryNodeModel", "NodeModel"]
