"""TreeKnobs Config Package

Hierarchical configurations on immutable node trees, with connected
sub-configurations that track a node of their parent.
"""

from .configuration import BaseHierarchicalConfiguration
from .delimiter import (
    DefaultListDelimiterHandler,
    DisabledListDelimiterHandler,
    ListDelimiterHandler,
)
from .exceptions import (
    ConfigError,
    ConfigurationRuntimeError,
    ConversionError,
    InvalidArgumentError,
    InvalidKeyError,
    NoSuchKeyError,
    UnsupportedOperationError,
)
from .expression import (
    DEFAULT_EXPRESSION_ENGINE,
    DefaultExpressionEngine,
    DefaultExpressionSymbols,
    ExpressionEngine,
    NodeAddData,
    QueryResult,
)
from .flat import (
    ConfigurationSource,
    FlatLeafNode,
    FlatNode,
    FlatNodeHandler,
    FlatRootNode,
    MapConfigurationSource,
)
from .handler import DelegatingNodeHandler, InMemoryNodeHandler, NodeHandler, TreeData
from .interpolation import ConfigurationInterpolator
from .model import InMemoryNodeModel, NodeModel
from .node import (
    ImmutableNode,
    build_dot,
    build_node_from_string,
    node_from_dict,
    node_to_dict,
)
from .selector import NodeSelector
from .subnode import SubnodeConfiguration
from .sync import NoOpSynchronizer, ReadWriteSynchronizer, Synchronizer
from .tracked import TrackedNodeModel

__version__ = "1.0.0"
__all__ = [
    "BaseHierarchicalConfiguration",
    "SubnodeConfiguration",
    # Nodes and models
    "ImmutableNode",
    "NodeModel",
    "InMemoryNodeModel",
    "TrackedNodeModel",
    "NodeSelector",
    "NodeHandler",
    "TreeData",
    "InMemoryNodeHandler",
    "DelegatingNodeHandler",
    "build_dot",
    "build_node_from_string",
    "node_from_dict",
    "node_to_dict",
    # Keys
    "ExpressionEngine",
    "DefaultExpressionEngine",
    "DefaultExpressionSymbols",
    "DEFAULT_EXPRESSION_ENGINE",
    "NodeAddData",
    "QueryResult",
    # Flat structures
    "ConfigurationSource",
    "MapConfigurationSource",
    "FlatNode",
    "FlatRootNode",
    "FlatLeafNode",
    "FlatNodeHandler",
    # Values
    "ConfigurationInterpolator",
    "ListDelimiterHandler",
    "DefaultListDelimiterHandler",
    "DisabledListDelimiterHandler",
    # Concurrency
    "Synchronizer",
    "ReadWriteSynchronizer",
    "NoOpSynchronizer",
    # Exceptions
    "ConfigError",
    "ConfigurationRuntimeError",
    "ConversionError",
    "InvalidArgumentError",
    "InvalidKeyError",
    "NoSuchKeyError",
    "UnsupportedOperationError",
]
