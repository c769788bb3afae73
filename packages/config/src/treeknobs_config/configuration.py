"""Hierarchical configurations on top of a node model."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, Dict, List, Mapping

from treeknobs_common import Event, EventType, ListenerList

from .delimiter import DisabledListDelimiterHandler, ListDelimiterHandler
from .exceptions import (
    ConfigurationRuntimeError,
    ConversionError,
    InvalidArgumentError,
    NoSuchKeyError,
    UnsupportedOperationError,
)
from .expression import DEFAULT_EXPRESSION_ENGINE, ExpressionEngine, QueryResult
from .handler import NodeHandler
from .interpolation import ConfigurationInterpolator
from .model import InMemoryNodeModel, NodeModel
from .node import ImmutableNode, node_from_dict, node_to_dict
from .selector import NodeSelector
from .sync import Synchronizer

if TYPE_CHECKING:
    from .subnode import SubnodeConfiguration

logger = logging.getLogger(__name__)

_MISSING = object()

_TRUE_STRINGS = ("true", "yes", "on", "1")
_FALSE_STRINGS = ("false", "no", "off", "0")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError(f"Not a boolean value: {value!r}")


class BaseHierarchicalConfiguration:
    """A configuration storing its properties in a tree of nodes.

    Properties are addressed by keys which the configuration's expression
    engine resolves against the root node of the node model, e.g.
    ``database.server(1).host`` or ``server[@port]``.

    Sub-configurations for a part of the tree come in two flavours:

    - independent copies (``configuration_at(key)``): changes on either side
      are not seen by the other one;
    - connected views (``configuration_at(key, support_updates=True)``):
      ``SubnodeConfiguration`` objects tracking a node of this
      configuration's model, so that changes are visible on both sides
      until the tracked node disappears from the tree.

    Args:
        model: The node model, or a root node for a new in-memory model.
            An empty in-memory model if None.

    Example:
        ```python
        config = BaseHierarchicalConfiguration.from_dict(
            {"database": {"host": "localhost", "port": 5432}}
        )
        config.get_int("database.port")  # 5432

        db = config.configuration_at("database", support_updates=True)
        db.set_property("host", "db.example.com")
        config.get_string("database.host")  # "db.example.com"
        ```
    """

    def __init__(self, model: NodeModel | ImmutableNode | None = None) -> None:
        if model is None:
            model = InMemoryNodeModel()
        elif isinstance(model, ImmutableNode):
            model = InMemoryNodeModel(model)
        self._model: NodeModel = model
        self._expression_engine: ExpressionEngine = DEFAULT_EXPRESSION_ENGINE
        self._list_delimiter_handler: ListDelimiterHandler = DisabledListDelimiterHandler()
        self._throw_exception_on_missing = False
        self._listeners = ListenerList("configuration listeners")
        self._interpolator = self._create_interpolator()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BaseHierarchicalConfiguration:
        """Create a configuration from a nested dictionary (see ``node_from_dict``)."""
        return cls(node_from_dict(data))

    def to_dict(self) -> Dict[str, Any]:
        return node_to_dict(self.get_root_node())

    # ==================== Settings ====================

    @property
    def model(self) -> NodeModel:
        return self._model

    def get_model(self) -> NodeModel:
        return self._model

    @property
    def synchronizer(self) -> Synchronizer:
        return self._model.synchronizer

    @property
    def expression_engine(self) -> ExpressionEngine:
        return self._expression_engine

    @expression_engine.setter
    def expression_engine(self, engine: ExpressionEngine | None) -> None:
        self._expression_engine = engine if engine is not None else DEFAULT_EXPRESSION_ENGINE

    @property
    def list_delimiter_handler(self) -> ListDelimiterHandler:
        return self._list_delimiter_handler

    @list_delimiter_handler.setter
    def list_delimiter_handler(self, handler: ListDelimiterHandler) -> None:
        if handler is None:
            raise InvalidArgumentError("List delimiter handler must not be None")
        self._list_delimiter_handler = handler

    @property
    def throw_exception_on_missing(self) -> bool:
        return self._throw_exception_on_missing

    @throw_exception_on_missing.setter
    def throw_exception_on_missing(self, value: bool) -> None:
        self._throw_exception_on_missing = bool(value)

    @property
    def interpolator(self) -> ConfigurationInterpolator:
        return self._interpolator

    @interpolator.setter
    def interpolator(self, interpolator: ConfigurationInterpolator | None) -> None:
        self._interpolator = (
            interpolator if interpolator is not None else self._create_interpolator()
        )

    def _create_interpolator(
        self, prototype: ConfigurationInterpolator | None = None
    ) -> ConfigurationInterpolator:
        interpolator = ConfigurationInterpolator(
            prefix_lookups=prototype.prefix_lookups if prototype is not None else None,
            default_lookups=[self._lookup_variable],
        )
        if prototype is not None and prototype.parent_interpolator is not None:
            interpolator.set_parent_interpolator(prototype.parent_interpolator)
        return interpolator

    def _lookup_variable(self, name: str) -> Any:
        value = self.get_property(name)
        if isinstance(value, list):
            return value[0] if value else None
        return value

    # ==================== Events ====================

    def add_event_listener(self, listener: Callable[[Event], Any]) -> None:
        """Register a listener notified after each change made through this object."""
        self._listeners.add(listener)

    def remove_event_listener(self, listener: Callable[[Event], Any]) -> bool:
        return self._listeners.remove(listener)

    def _fire(self, event_type: EventType, key: str | None, value: Any = None) -> None:
        self._listeners.fire(Event(
            type=event_type,
            topic="configuration",
            payload={"key": key, "value": value},
            source=self,
        ))

    # ==================== Reading ====================

    def get_root_node(self) -> ImmutableNode:
        return self._model.get_root_node()

    def get_root_element_name(self) -> str | None:
        return self.get_root_node().name

    def _query(self, key: str | None) -> tuple[List[QueryResult], NodeHandler]:
        with self.synchronizer.read_locked():
            handler = self._model.get_node_handler()
            root = self._model.get_root_node()
            return self._expression_engine.query(root, key, handler), handler

    def get_property(self, key: str) -> Any:
        """Return the raw value of a key.

        Returns:
            None if no node with a value matches, the value if exactly one
            does, otherwise the list of all values.
        """
        with self.synchronizer.read_locked():
            results, handler = self._query(key)
            values = [
                value for value in (result.get_value(handler) for result in results)
                if value is not None
            ]
        if not values:
            return None
        return values[0] if len(values) == 1 else values

    def _missing(self, key: str, default: Any) -> Any:
        if default is not _MISSING:
            return default
        if self._throw_exception_on_missing:
            raise NoSuchKeyError(
                f"Key {key!r} does not map to an existing object", context={"key": key}
            )
        return None

    def get(self, key: str, default: Any = _MISSING) -> Any:
        """Return the interpolated value of a key.

        A missing key yields ``default`` if given, else raises
        ``NoSuchKeyError`` when ``throw_exception_on_missing`` is set, else
        returns None.
        """
        value = self.get_property(key)
        if value is None:
            return self._missing(key, default)
        if isinstance(value, list):
            return [self._interpolator.interpolate(item) for item in value]
        return self._interpolator.interpolate(value)

    def _get_typed(
        self, key: str, default: Any, converter: Callable[[Any], Any], type_name: str
    ) -> Any:
        value = self.get_property(key)
        if isinstance(value, list):
            value = value[0]
        if value is None:
            return self._missing(key, default)
        value = self._interpolator.interpolate(value)
        try:
            return converter(value)
        except (TypeError, ValueError) as e:
            raise ConversionError(
                f"Key {key!r} cannot be converted to {type_name}",
                context={"key": key, "value": value},
            ) from e

    def get_string(self, key: str, default: Any = _MISSING) -> str | None:
        return self._get_typed(key, default, str, "str")

    def get_int(self, key: str, default: Any = _MISSING) -> int | None:
        return self._get_typed(key, default, int, "int")

    def get_float(self, key: str, default: Any = _MISSING) -> float | None:
        return self._get_typed(key, default, float, "float")

    def get_bool(self, key: str, default: Any = _MISSING) -> bool | None:
        return self._get_typed(key, default, _to_bool, "bool")

    def get_list(self, key: str, default: Any = _MISSING) -> List[Any] | None:
        value = self.get(key, default)
        if value is None or isinstance(value, list):
            return value
        return [value]

    def contains_key(self, key: str) -> bool:
        return self.get_property(key) is not None

    def __contains__(self, key: str) -> bool:
        return self.contains_key(key)

    def keys(self, prefix: str | None = None) -> List[str]:
        """Return the keys of all values (and attributes), in document order.

        Args:
            prefix: If given, only keys of the nodes selected by this key and
                their descendants are returned.
        """
        found: Dict[str, None] = {}
        with self.synchronizer.read_locked():
            handler = self._model.get_node_handler()
            if prefix:
                results, handler = self._query(prefix)
                for result in results:
                    if result.is_attribute_result:
                        found[prefix] = None
                    else:
                        self._collect_keys(handler, result.node, prefix, found)
            else:
                self._collect_keys(handler, self._model.get_root_node(), None, found)
        return list(found)

    def _collect_keys(
        self, handler: NodeHandler, node: Any, key: str | None, found: Dict[str, None]
    ) -> None:
        engine = self._expression_engine
        if key and handler.get_value(node) is not None:
            found[key] = None
        for name in sorted(handler.get_attributes(node)):
            found[engine.attribute_key(key, name)] = None
        for child in handler.get_children(node):
            self._collect_keys(handler, child, engine.node_key(child, key, handler), found)

    def is_empty(self) -> bool:
        return not self.keys()

    def size(self) -> int:
        return len(self.keys())

    def max_index(self, key: str) -> int:
        """Return the highest index of the nodes selected by ``key``, -1 if none."""
        results, _ = self._query(key)
        return len([r for r in results if not r.is_attribute_result]) - 1

    # ==================== Updating ====================

    def add_property(self, key: str, value: Any) -> None:
        """Add value(s) to a key; existing values are kept."""
        values = self._list_delimiter_handler.to_values(value)
        self._model.add_property(key, values, self._expression_engine)
        self._fire(EventType.ADD_PROPERTY, key, value)

    def set_property(self, key: str, value: Any) -> None:
        """Replace the value(s) of a key."""
        values = self._list_delimiter_handler.to_values(value)
        self._model.set_property(key, values, self._expression_engine)
        self._fire(EventType.SET_PROPERTY, key, value)

    def clear_property(self, key: str) -> None:
        self._model.clear_property(key, self._expression_engine)
        self._fire(EventType.CLEAR_PROPERTY, key)

    def clear_tree(self, key: str) -> None:
        """Remove the nodes selected by ``key`` including all their children."""
        self._model.clear_tree(key, self._expression_engine)
        self._fire(EventType.CLEAR_TREE, key)

    def clear(self) -> None:
        self._model.clear(self._expression_engine)
        self._fire(EventType.CLEAR, None)

    def add_nodes(self, key: str | None, nodes: Iterable[ImmutableNode]) -> None:
        nodes = list(nodes)
        self._model.add_nodes(key, nodes, self._expression_engine)
        self._fire(EventType.ADD_NODES, key, nodes)

    def set_root_node(self, node: ImmutableNode | None) -> None:
        self._model.set_root_node(node)
        self._fire(EventType.ROOT_REPLACED, None, node)

    # ==================== Cloning ====================

    def clone(self) -> BaseHierarchicalConfiguration:
        """Return a copy with its own node model, listeners and interpolator.

        The copy shares the (immutable) nodes and all settings. Its
        interpolator has the same parent as this configuration's one.
        """
        clone = copy.copy(self)
        clone._model = self.clone_node_model()
        clone._listeners = ListenerList("configuration listeners")
        clone._interpolator = clone._create_interpolator(self._interpolator)
        return clone

    def clone_node_model(self) -> NodeModel:
        """Create the node model of a clone."""
        return InMemoryNodeModel(self._model.get_in_memory_representation())

    # ==================== Sub configurations ====================

    def configuration_at(
        self, key: str, support_updates: bool = False
    ) -> BaseHierarchicalConfiguration:
        """Return a configuration for the single node selected by ``key``.

        Args:
            key: Key selecting exactly one node.
            support_updates: If True, return a ``SubnodeConfiguration``
                connected to this configuration; otherwise an independent copy.

        Raises:
            ConfigurationRuntimeError: If the key does not select exactly one node.
        """
        if support_updates:
            with self.synchronizer.write_locked():
                return self.create_connected_subconfiguration(key)
        return self._create_independent(self._single_node(key))

    def configurations_at(
        self, key: str, support_updates: bool = False
    ) -> List[BaseHierarchicalConfiguration]:
        """Return one configuration per node selected by ``key``."""
        if support_updates:
            with self.synchronizer.write_locked():
                model = self._connected_model()
                selectors = model.track_child_nodes(key, self._expression_engine)
                return [self._connect(model, selector) for selector in selectors]
        results, _ = self._query(key)
        return [
            self._create_independent(result.node)
            for result in results
            if not result.is_attribute_result
        ]

    def child_configurations_at(
        self, key: str, support_updates: bool = False
    ) -> List[BaseHierarchicalConfiguration]:
        """Return one configuration per child of the node selected by ``key``.

        An empty list is returned if the key does not select a single node.
        """
        if support_updates:
            with self.synchronizer.write_locked():
                model = self._connected_model()
                results, _ = self._query(key)
                if len(results) != 1 or results[0].is_attribute_result:
                    return []
                tree = model.get_tree_data()
                selectors = [
                    NodeSelector(self._expression_engine.canonical_key(child, None, tree))
                    for child in results[0].node.children
                ]
                for selector in selectors:
                    model.track_node(selector, self._expression_engine)
                return [self._connect(model, selector) for selector in selectors]
        results, handler = self._query(key)
        if len(results) != 1 or results[0].is_attribute_result:
            return []
        return [
            self._create_independent(child)
            for child in handler.get_children(results[0].node)
        ]

    def create_connected_subconfiguration(self, key: str) -> SubnodeConfiguration:
        """Track the node selected by ``key`` and return a connected view on it.

        Raises:
            ConfigurationRuntimeError: If the key does not select exactly one node.
        """
        with self.synchronizer.write_locked():
            model = self._connected_model()
            selector = NodeSelector(key)
            model.track_node(selector, self._expression_engine)
            return self._connect(model, selector)

    def _connected_model(self) -> InMemoryNodeModel:
        if not isinstance(self._model, InMemoryNodeModel):
            raise UnsupportedOperationError(
                "Connected sub configurations require an in-memory node model",
                context={"model": type(self._model).__name__},
            )
        return self._model

    def _connect(self, model: InMemoryNodeModel, selector: NodeSelector) -> SubnodeConfiguration:
        """Create a view on an already tracked selector."""
        from .subnode import SubnodeConfiguration
        from .tracked import TrackedNodeModel

        try:
            tracked = TrackedNodeModel(model, selector)
        except Exception:
            model.untrack_node(selector)
            raise
        try:
            sub = SubnodeConfiguration(self, tracked, selector)
        except Exception:
            tracked.close()
            raise
        logger.debug("Created connected sub configuration for %s", selector)
        return sub

    def _single_node(self, key: str) -> ImmutableNode:
        results, _ = self._query(key)
        if len(results) != 1 or results[0].is_attribute_result:
            raise ConfigurationRuntimeError(
                f"Passed in key must select exactly one node (found {len(results)}): {key}",
                context={"key": key, "matches": len(results)},
            )
        return results[0].node

    def _create_independent(self, node: ImmutableNode) -> BaseHierarchicalConfiguration:
        sub = BaseHierarchicalConfiguration(InMemoryNodeModel(node))
        self._init_subconfiguration(sub)
        return sub

    def _init_subconfiguration(self, sub: BaseHierarchicalConfiguration) -> None:
        """Pass this configuration's settings on to a sub configuration."""
        sub.expression_engine = self._expression_engine
        sub.list_delimiter_handler = self._list_delimiter_handler
        sub.throw_exception_on_missing = self._throw_exception_on_missing
        sub.interpolator.set_parent_interpolator(self._interpolator)


__all__ = ["BaseHierarchicalConfiguration"]
