"""Node models presenting a tracked node of another model as their root."""

from __future__ import annotations

import logging
import weakref
from typing import Any, Iterable, List

from .exceptions import ConfigurationRuntimeError, InvalidArgumentError
from .expression import ExpressionEngine, QueryResult
from .handler import DelegatingNodeHandler, NodeHandler
from .model import InMemoryNodeModel, NodeModel
from .node import ImmutableNode
from .selector import NodeSelector
from .sync import Synchronizer

logger = logging.getLogger(__name__)


class TrackedNodeModel(NodeModel):
    """A node model whose root is a tracked node of a parent model.

    While the tracked node is linked, every operation is forwarded to the
    parent model and interpreted relative to the tracked node, so changes
    are visible in both directions. Once the node is detached (because an
    update removed it, or because ``set_root_node`` was called on this
    model) the model works on a private ``InMemoryNodeModel`` holding the
    last known node. Detaching cannot be undone.

    The selector must already be tracked by the parent model; the caller
    owns that registration, and ``close`` releases it when
    ``untrack_on_close`` is True.
    A model that is garbage collected without being closed releases the
    registration as well.

    Args:
        parent_model: The model owning the tracked node.
        selector: The selector of the tracked node.
        untrack_on_close: Whether ``close`` untracks the selector.
        detached_root: If given, the model starts detached with this root
            and is not registered with the parent at all.

    Raises:
        InvalidArgumentError: If ``parent_model`` or ``selector`` is None.
    """

    def __init__(
        self,
        parent_model: InMemoryNodeModel,
        selector: NodeSelector,
        untrack_on_close: bool = True,
        detached_root: ImmutableNode | None = None,
    ) -> None:
        if parent_model is None:
            raise InvalidArgumentError("Parent model must not be None")
        if selector is None:
            raise InvalidArgumentError("Selector must not be None")
        self._parent_model = parent_model
        self._selector = selector
        self._untrack_on_close = untrack_on_close and detached_root is None
        self._detached_model: InMemoryNodeModel | None = None
        self._closed = False
        if detached_root is not None:
            self.detach(detached_root)
        else:
            last_node = parent_model.attach_tracked_model(selector, self)
            if last_node is not None:
                self.detach(last_node)
        self._finalizer: weakref.finalize | None = None
        if self._untrack_on_close:
            self._finalizer = weakref.finalize(self, _release, parent_model, selector)
            self._finalizer.atexit = False

    @property
    def parent_model(self) -> InMemoryNodeModel:
        return self._parent_model

    @property
    def selector(self) -> NodeSelector:
        return self._selector

    @property
    def untrack_on_close(self) -> bool:
        return self._untrack_on_close

    @property
    def synchronizer(self) -> Synchronizer:
        return self._parent_model.synchronizer

    def is_detached(self) -> bool:
        with self.synchronizer.read_locked():
            return self._detached_model is not None

    def detach(self, root: ImmutableNode) -> None:
        """Continue on a private model with ``root``; no-op if already detached."""
        with self.synchronizer.write_locked():
            if self._detached_model is None:
                self._detached_model = InMemoryNodeModel(root, synchronizer=self.synchronizer)
                logger.debug("Model for %s is now detached", self._selector)

    def get_root_node(self) -> ImmutableNode:
        with self.synchronizer.read_locked():
            if self._detached_model is not None:
                return self._detached_model.get_root_node()
            return self._parent_model.get_tracked_node(self._selector)

    def get_in_memory_representation(self) -> ImmutableNode:
        return self.get_root_node()

    def get_node_handler(self) -> NodeHandler:
        with self.synchronizer.read_locked():
            if self._detached_model is not None:
                return self._detached_model.get_node_handler()
            return DelegatingNodeHandler(
                self._parent_model.get_tracked_node(self._selector),
                self._parent_model.get_node_handler(),
            )

    def set_root_node(self, node: ImmutableNode | None) -> None:
        """Detach this model and continue with ``node`` as root.

        Other views on the same tracked node are not affected.
        """
        with self.synchronizer.write_locked():
            if self._detached_model is not None:
                self._detached_model.set_root_node(node)
            else:
                self.detach(node if node is not None else ImmutableNode())

    def add_property(self, key: str, values: Iterable[Any], resolver: ExpressionEngine) -> None:
        self._forward("add_property", key, values, resolver)

    def add_nodes(
        self, key: str | None, nodes: Iterable[ImmutableNode], resolver: ExpressionEngine
    ) -> None:
        self._forward("add_nodes", key, nodes, resolver)

    def set_property(self, key: str, values: Iterable[Any], resolver: ExpressionEngine) -> None:
        self._forward("set_property", key, values, resolver)

    def clear_tree(self, key: str | None, resolver: ExpressionEngine) -> List[QueryResult]:
        return self._forward("clear_tree", key, resolver)

    def clear_property(self, key: str, resolver: ExpressionEngine) -> None:
        self._forward("clear_property", key, resolver)

    def clear(self, resolver: ExpressionEngine) -> None:
        self._forward("clear", resolver)

    def _forward(self, operation: str, *args: Any) -> Any:
        with self.synchronizer.read_locked():
            detached = self._detached_model
        if detached is None:
            try:
                return getattr(self._parent_model, operation)(*args, selector=self._selector)
            except ConfigurationRuntimeError:
                # detached by another thread after the check
                if not self.is_detached():
                    raise
                detached = self._detached_model
        return getattr(detached, operation)(*args)

    def close(self) -> None:
        """Release the tracked selector; calling it again does nothing."""
        with self.synchronizer.write_locked():
            if self._closed:
                return
            self._closed = True
            if self._untrack_on_close:
                self._finalizer.detach()
                self._parent_model.untrack_node(self._selector, self)

    def __enter__(self) -> TrackedNodeModel:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def _release(parent_model: InMemoryNodeModel, selector: NodeSelector) -> None:
    logger.debug("Releasing %s of a dropped tracked model", selector)
    parent_model.release_tracked_node(selector)


__all__ = ["TrackedNodeModel"]
