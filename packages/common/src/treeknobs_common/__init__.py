"""Common utilities and base classes for treeknobs packages.

This package provides shared functionality used across the treeknobs packages:

- **Exceptions**: Unified exception hierarchy with context support
- **Events**: Change events and synchronous listener lists

Example:
    ```python
    from treeknobs_common import Event, EventType, ListenerList, TreeknobsError

    # Use common exceptions
    raise TreeknobsError("Something went wrong", context={"details": "here"})
    ```
"""

from treeknobs_common.events import Event, EventType, ListenerList
from treeknobs_common.exceptions import (
    ConcurrencyError,
    ConfigurationError,
    NotFoundError,
    OperationError,
    TreeknobsError,
    ValidationError,
)

__version__ = "1.0.0"

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "TreeknobsError",
    "ValidationError",
    "ConfigurationError",
    "NotFoundError",
    "OperationError",
    "ConcurrencyError",
    # Events
    "Event",
    "EventType",
    "ListenerList",
]
