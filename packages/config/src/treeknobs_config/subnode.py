"""Connected sub-configurations for a tracked node of a parent configuration."""

from __future__ import annotations

import logging
from typing import Any

from .configuration import BaseHierarchicalConfiguration
from .exceptions import InvalidArgumentError, UnsupportedOperationError
from .model import InMemoryNodeModel
from .selector import NodeSelector
from .tracked import TrackedNodeModel

logger = logging.getLogger(__name__)


class SubnodeConfiguration(BaseHierarchicalConfiguration):
    """A configuration whose root is a tracked node of a parent configuration.

    The view and its parent share one node model: a property set on the
    view is immediately visible in the parent under the tracked node's key,
    and changes made through the parent below the tracked node are visible
    in the view. After every update of the parent the selector is resolved
    again. Once it no longer selects exactly one node the view is detached
    and keeps working on a private copy of the last node it saw; this
    cannot be undone.

    Instances are normally created by
    ``BaseHierarchicalConfiguration.configuration_at(key, support_updates=True)``.
    Settings (expression engine, list delimiter handler, throw-on-missing
    flag) are copied from the parent at creation; later changes of the
    parent's settings do not affect the view. Variables that cannot be
    resolved by the view are looked up in the parent.

    Call ``close`` (or use the view as a context manager) to release the
    tracked node when the view is no longer needed.
    A view that is garbage collected without being closed releases it, too.

    Args:
        parent: The parent configuration.
        model: The tracked node model of the view.
        selector: The selector of the tracked node.

    Raises:
        InvalidArgumentError: If an argument is None.
    """

    def __init__(
        self,
        parent: BaseHierarchicalConfiguration,
        model: TrackedNodeModel,
        selector: NodeSelector,
    ) -> None:
        if parent is None:
            raise InvalidArgumentError("Parent configuration must not be None")
        if model is None:
            raise InvalidArgumentError("Node model must not be None")
        if selector is None:
            raise InvalidArgumentError("Root selector must not be None")
        super().__init__(model)
        self._parent = parent
        self._root_selector = selector
        parent._init_subconfiguration(self)

    @property
    def parent(self) -> BaseHierarchicalConfiguration:
        return self._parent

    def get_parent(self) -> BaseHierarchicalConfiguration:
        return self._parent

    @property
    def root_selector(self) -> NodeSelector:
        return self._root_selector

    def get_root_selector(self) -> NodeSelector:
        return self._root_selector

    @property
    def model(self) -> TrackedNodeModel:
        return self._model

    def get_model(self) -> TrackedNodeModel:
        return self._model

    def is_detached(self) -> bool:
        return self._model.is_detached()

    def clone_node_model(self) -> TrackedNodeModel:
        """Create a model tracking the same node for a clone.

        A clone of a linked view is another linked view (the selector's
        reference count is incremented). A clone of a detached view is
        detached as well and starts with the view's current content.
        """
        model = self._model
        parent_model = model.parent_model
        with self.synchronizer.write_locked():
            if model.is_detached():
                return TrackedNodeModel(
                    parent_model, self._root_selector, detached_root=model.get_root_node()
                )
            parent_model.track_node(self._root_selector, self._expression_engine)
            try:
                return TrackedNodeModel(parent_model, self._root_selector)
            except Exception:
                parent_model.untrack_node(self._root_selector)
                raise

    def _connected_model(self) -> InMemoryNodeModel:
        raise UnsupportedOperationError(
            "Connected sub configurations of a sub configuration are not supported",
            context={"selector": self._root_selector.key},
        )

    def close(self) -> None:
        """Release the tracked node of this view."""
        self._model.close()

    def __enter__(self) -> SubnodeConfiguration:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


__all__ = ["SubnodeConfiguration"]
