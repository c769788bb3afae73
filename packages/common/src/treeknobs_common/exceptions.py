"""Common exception hierarchy for all treeknobs packages.

This module provides a unified exception framework that the treeknobs
packages extend. Every exception accepts an optional context dictionary
carrying structured information about the failure.

Example:
    ```python
    from treeknobs_common.exceptions import NotFoundError, TreeknobsError

    # Simple exception
    raise NotFoundError("Key not found")

    # Context-rich exception
    raise NotFoundError(
        "Key not found",
        context={"key": "database.host", "configuration": "SubnodeConfiguration"}
    )

    # Catch any treeknobs error
    try:
        operation()
    except TreeknobsError as e:
        logger.error(f"Error: {e}")
        if e.context:
            logger.error(f"Context: {e.context}")
    ```

Package-Specific Extensions:
    ```python
    from treeknobs_common.exceptions import ConfigurationError

    class ConfigurationRuntimeError(ConfigurationError):
        '''Raised when a configuration is used in an invalid way.'''
        pass
    ```
"""

from typing import Any, Dict


class TreeknobsError(Exception):
    """Base exception for all treeknobs packages.

    Attributes:
        context: Dictionary containing contextual information about the error
        details: Alias for context

    Args:
        message: Human-readable error message
        context: Optional dictionary with error context (keys, selectors, etc.)
        details: Alternative to context (both are supported)

    Example:
        ```python
        error = TreeknobsError(
            "Operation failed",
            context={"operation": "add_property", "key": "a.b"}
        )
        str(error)
        # 'Operation failed'
        error.context
        # {'operation': 'add_property', 'key': 'a.b'}
        ```
    """

    def __init__(
        self,
        message: str,
        context: Dict[str, Any] | None = None,
        details: Dict[str, Any] | None = None,
    ):
        """Initialize the exception with optional context.

        Args:
            message: Error message
            context: Optional context dictionary
            details: Optional details dictionary (takes precedence over context)
        """
        super().__init__(message)
        self.context = details or context or {}
        self.details = self.context


class ValidationError(TreeknobsError):
    """Raised when validation fails.

    Use this exception when arguments or data fail validation checks,
    e.g. a required constructor argument is missing or a key is malformed.

    Example:
        ```python
        raise ValidationError(
            "Node selector must not be None",
            context={"argument": "selector"}
        )
        ```
    """

    pass


class ConfigurationError(TreeknobsError):
    """Raised when configuration is invalid or used incorrectly.

    Example:
        ```python
        raise ConfigurationError(
            "Key does not select a single node",
            context={"key": "tables.table", "matches": 2}
        )
        ```
    """

    pass


class NotFoundError(TreeknobsError):
    """Raised when a requested item is not found.

    Example:
        ```python
        raise NotFoundError(
            "No such key",
            context={"key": "database.port"}
        )
        ```
    """

    pass


class OperationError(TreeknobsError):
    """Raised when an operation fails.

    Use this exception for failures that don't fit the other categories,
    e.g. an operation that is not valid in the current state.
    """

    pass


class ConcurrencyError(TreeknobsError):
    """Raised when concurrent operation conflicts occur.

    Example:
        ```python
        raise ConcurrencyError(
            "end_write() called without begin_write()",
            context={"thread": threading.get_ident()}
        )
        ```
    """

    pass


__all__ = [
    "TreeknobsError",
    "ValidationError",
    "ConfigurationError",
    "NotFoundError",
    "OperationError",
    "ConcurrencyError",
]
