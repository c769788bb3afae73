"""Expression engines: resolving string keys to nodes.

An expression engine maps a key and a root node to the nodes (or
attributes) the key selects, and computes where new nodes have to be
created when a key is used to add a property. Engines only talk to nodes
through a ``NodeHandler``.

The ``DefaultExpressionEngine`` understands keys like::

    database.server                 # all "server" children of "database"
    database.server(1).host         # "host" of the second server
    database.server[@port]          # the "port" attribute of the servers
    [@version]                      # attribute of the root node
    key..with..dots                 # escaped delimiter: one node "key.with.dots"
    f((x).a[@[@b]                   # doubled "(" and "[@": nodes "f(x)" and "a[@b]"

The key grammar is built with pyparsing from ``DefaultExpressionSymbols``,
so the delimiter and bracket characters can be customized.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Generic, List, Protocol, Tuple, TypeVar, runtime_checkable

from pyparsing import (
    Group,
    Opt,
    ParseException,
    ParserElement,
    Regex,
    StringEnd,
    Suppress,
    Word,
    ZeroOrMore,
    nums,
)

from .exceptions import InvalidKeyError
from .handler import NodeHandler

T = TypeVar("T")


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    """A single result of a key query: a node or an attribute of a node."""

    node: T
    attribute_name: str | None = None

    @property
    def is_attribute_result(self) -> bool:
        return self.attribute_name is not None

    def get_value(self, handler: NodeHandler[T]) -> Any:
        """Return the node value or the attribute value of this result."""
        if self.attribute_name is not None:
            return handler.get_attribute_value(self.node, self.attribute_name)
        return handler.get_value(self.node)


@dataclass(frozen=True)
class NodeAddData(Generic[T]):
    """Where and how new nodes are created for an add operation.

    Attributes:
        parent: Existing node below which new nodes are created.
        new_node_name: Name of the node (or attribute) to add.
        is_attribute: True if an attribute is added instead of a node.
        path_nodes: Names of intermediate nodes to create between
            ``parent`` and the new node.
    """

    parent: T
    new_node_name: str
    is_attribute: bool = False
    path_nodes: Tuple[str, ...] = ()


@runtime_checkable
class ExpressionEngine(Protocol):
    """Interface of an expression engine."""

    def query(self, root: Any, key: str | None, handler: NodeHandler) -> List[QueryResult]:
        """Return the results selected by ``key`` below ``root``."""
        ...

    def prepare_add(self, root: Any, key: str, handler: NodeHandler) -> NodeAddData:
        """Determine how a new node for ``key`` is added below ``root``."""
        ...

    def node_key(self, node: Any, parent_key: str | None, handler: NodeHandler) -> str:
        """Return the key of ``node`` given the key of its parent."""
        ...

    def attribute_key(self, parent_key: str | None, attribute_name: str) -> str:
        """Return the key of an attribute of the node with ``parent_key``."""
        ...

    def canonical_key(self, node: Any, parent_key: str | None, handler: NodeHandler) -> str:
        """Return a key that selects exactly ``node`` (with indices)."""
        ...


@dataclass(frozen=True)
class DefaultExpressionSymbols:
    """Special characters of the default key syntax."""

    property_delimiter: str = "."
    escaped_delimiter: str = ".."
    index_start: str = "("
    index_end: str = ")"
    attribute_start: str = "[@"
    attribute_end: str = "]"


DEFAULT_SYMBOLS = DefaultExpressionSymbols()


@dataclass(frozen=True)
class KeyPart:
    """One node step of a parsed key."""

    name: str
    index: int | None = None


@dataclass(frozen=True)
class ParsedKey:
    """A parsed key: node steps plus an optional trailing attribute."""

    parts: Tuple[KeyPart, ...] = ()
    attribute: str | None = None


def _name_escapes(symbols: DefaultExpressionSymbols) -> Dict[str, str]:
    """Map the characters that end a name to their escaped form."""
    return {
        symbols.property_delimiter: symbols.escaped_delimiter,
        symbols.index_start: symbols.index_start * 2,
        symbols.attribute_start: symbols.attribute_start * 2,
    }


def _replace_all(text: str, mapping: Dict[str, str]) -> str:
    pattern = "|".join(re.escape(s) for s in sorted(mapping, key=len, reverse=True))
    return re.sub(pattern, lambda m: mapping[m.group(0)], text)


def _escape_name(name: str, symbols: DefaultExpressionSymbols) -> str:
    return _replace_all(name, _name_escapes(symbols))


def _unescape_name(name: str, symbols: DefaultExpressionSymbols) -> str:
    return _replace_all(name, {v: k for k, v in _name_escapes(symbols).items()})


@lru_cache(maxsize=16)
def _key_grammar(symbols: DefaultExpressionSymbols) -> ParserElement:
    """Build the pyparsing grammar for a set of symbols."""
    delim = re.escape(symbols.property_delimiter)
    stops = "|".join(
        re.escape(s)
        for s in (symbols.property_delimiter, symbols.index_start, symbols.attribute_start)
    )
    escapes = "|".join(
        re.escape(s) for s in sorted(_name_escapes(symbols).values(), key=len, reverse=True)
    )
    name = Regex(f"(?:{escapes}|(?!{stops}).)+")
    index = (
        Suppress(symbols.index_start)
        + Word(nums).set_parse_action(lambda t: int(t[0]))
        + Suppress(symbols.index_end)
    )
    attr_end = re.escape(symbols.attribute_end)
    attribute = (
        Suppress(symbols.attribute_start)
        + Regex(f"(?:(?!{attr_end}).)+")
        + Suppress(symbols.attribute_end)
    )
    node_part = Group(
        name("name") + Opt(index("index")) + Opt(attribute("attribute"))
    )
    attribute_part = Group(attribute("attribute"))
    part = node_part | attribute_part
    grammar = part + ZeroOrMore(Suppress(Regex(delim)) + part) + StringEnd()
    return grammar.leave_whitespace()


@lru_cache(maxsize=1024)
def parse_key(key: str, symbols: DefaultExpressionSymbols = DEFAULT_SYMBOLS) -> ParsedKey:
    """Parse a key into node steps and an optional attribute.

    Args:
        key: The key to parse; empty keys select the root.
        symbols: The key syntax.

    Returns:
        The parsed key.

    Raises:
        InvalidKeyError: If the key does not follow the syntax, or an
            attribute is not the last element of the key.
    """
    if not key:
        return ParsedKey()
    try:
        tokens = _key_grammar(symbols).parse_string(key, parse_all=True)
    except ParseException as e:
        raise InvalidKeyError(
            f"Invalid key: {key!r}", context={"key": key, "column": e.column}
        ) from e

    parts: List[KeyPart] = []
    attribute = None
    for group in tokens:
        if attribute is not None:
            raise InvalidKeyError(
                f"Attribute must be the last element of key {key!r}",
                context={"key": key},
            )
        if "name" in group:
            name = _unescape_name(group["name"], symbols)
            index = group["index"] if "index" in group else None
            parts.append(KeyPart(name, index))
        if "attribute" in group:
            attribute = group["attribute"]
    return ParsedKey(tuple(parts), attribute)


@dataclass(frozen=True)
class DefaultExpressionEngine:
    """The default expression engine for dotted keys.

    Instances are immutable and can be shared between configurations; use
    ``DEFAULT_EXPRESSION_ENGINE`` for the standard syntax.
    """

    symbols: DefaultExpressionSymbols = field(default=DEFAULT_SYMBOLS)

    def parse(self, key: str | None) -> ParsedKey:
        return parse_key(key or "", self.symbols)

    def query(self, root: T, key: str | None, handler: NodeHandler[T]) -> List[QueryResult[T]]:
        """Return all nodes or attributes selected by ``key`` below ``root``.

        Results are returned in document order. A missing key returns an
        empty list.
        """
        parsed = self.parse(key)
        current: List[T] = [root]
        for part in parsed.parts:
            selected: List[T] = []
            for node in current:
                children = handler.get_children(node, part.name)
                if part.index is None:
                    selected.extend(children)
                elif part.index < len(children):
                    selected.append(children[part.index])
            current = selected
            if not current:
                return []

        if parsed.attribute is not None:
            return [
                QueryResult(node, parsed.attribute)
                for node in current
                if parsed.attribute in handler.get_attributes(node)
            ]
        return [QueryResult(node) for node in current]

    def prepare_add(self, root: T, key: str, handler: NodeHandler[T]) -> NodeAddData[T]:
        """Find the node below which a new node for ``key`` is created.

        The key is followed as far as possible. Steps without an index use
        the last child with the given name. Remaining steps become path
        nodes to create.

        Raises:
            InvalidKeyError: If the key is empty or its last node step has an
                index.
        """
        parsed = self.parse(key)
        steps = parsed.parts
        if parsed.attribute is None:
            if not steps:
                raise InvalidKeyError(
                    "Cannot add a node to the root without a key", context={"key": key}
                )
            if steps[-1].index is not None:
                raise InvalidKeyError(
                    f"Index is not allowed in the last part of key {key!r} for add operations",
                    context={"key": key},
                )
            steps, new_name = steps[:-1], steps[-1].name
        else:
            new_name = parsed.attribute

        current = root
        pos = 0
        for part in steps:
            children = handler.get_children(current, part.name)
            if part.index is not None:
                if part.index >= len(children):
                    break
                current = children[part.index]
            elif children:
                current = children[-1]
            else:
                break
            pos += 1

        return NodeAddData(
            parent=current,
            new_node_name=new_name,
            is_attribute=parsed.attribute is not None,
            path_nodes=tuple(part.name for part in steps[pos:]),
        )

    def escape(self, name: str) -> str:
        """Escape the delimiter, index start and attribute start in a node name.

        The delimiter becomes the escaped delimiter; index and attribute
        start markers are doubled. ``parse_key`` reverses this.
        """
        return _escape_name(name, self.symbols)

    def node_key(self, node: T, parent_key: str | None, handler: NodeHandler[T]) -> str:
        name = handler.node_name(node)
        if not parent_key:
            return self.escape(name) if name is not None else ""
        if name is None:
            return parent_key
        return f"{parent_key}{self.symbols.property_delimiter}{self.escape(name)}"

    def attribute_key(self, parent_key: str | None, attribute_name: str) -> str:
        symbols = self.symbols
        return f"{parent_key or ''}{symbols.attribute_start}{attribute_name}{symbols.attribute_end}"

    def canonical_key(self, node: T, parent_key: str | None, handler: NodeHandler[T]) -> str:
        """Return a key with indices that selects exactly ``node``.

        The node's ancestors up to ``parent_key``'s node (or the root) are
        determined through ``handler.get_parent``.
        """
        steps: List[str] = []
        current = node
        parent = handler.get_parent(current)
        while parent is not None:
            name = handler.node_name(current)
            siblings = handler.get_children(parent, name)
            index = next(i for i, sibling in enumerate(siblings) if sibling is current)
            steps.append(
                f"{self.escape(name or '')}{self.symbols.index_start}{index}{self.symbols.index_end}"
            )
            current = parent
            parent = handler.get_parent(current)
        steps.reverse()
        if parent_key:
            steps.insert(0, parent_key)
        return self.symbols.property_delimiter.join(steps)


DEFAULT_EXPRESSION_ENGINE = DefaultExpressionEngine()
