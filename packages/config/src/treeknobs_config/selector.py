"""Node selectors: re-resolvable handles to a position in a node tree."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from .exceptions import InvalidKeyError

if TYPE_CHECKING:
    from .expression import ExpressionEngine
    from .handler import NodeHandler

T = TypeVar("T")


@dataclass(frozen=True)
class NodeSelector:
    """Describes how to locate a single node below a root node.

    A selector stores a key, not a node. Each call to ``select`` evaluates
    the key again, so after the tree changed it may return a different
    node, the same node or nothing. Selectors with the same key are equal
    and hash alike, which lets independently created selectors share one
    tracked node.
    """

    key: str

    def select(self, root: T, resolver: ExpressionEngine, handler: NodeHandler[T]) -> T | None:
        """Return the single node selected by the key, None otherwise.

        Zero results, several results, attribute results and keys the engine
        cannot parse all count as "not resolvable"; this method never raises
        for such selections.

        Args:
            root: The root node to resolve the key against.
            resolver: The expression engine evaluating the key.
            handler: Handler for the node structure.
        """
        try:
            results = resolver.query(root, self.key, handler)
        except InvalidKeyError:
            return None
        if len(results) != 1 or results[0].is_attribute_result:
            return None
        return results[0].node

    def __str__(self) -> str:
        return f"NodeSelector[{self.key}]"

