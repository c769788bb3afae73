"""Custom exceptions for the config package.

This module defines exception types for the config package,
built on the common exception framework from treeknobs_common.
"""

from treeknobs_common import (
    ConfigurationError as BaseConfigurationError,
    NotFoundError,
    ValidationError,
)

ConfigError = BaseConfigurationError


class ConfigurationRuntimeError(BaseConfigurationError):
    """Raised when a configuration or node structure is used incorrectly."""

    pass


class InvalidArgumentError(ValidationError, ValueError):
    """Raised when a required argument is missing or invalid."""

    pass


class UnsupportedOperationError(ConfigurationRuntimeError):
    """Raised when an operation is not supported in the given context."""

    pass


class InvalidKeyError(ValidationError):
    """Raised when a key cannot be parsed by an expression engine."""

    pass


class NoSuchKeyError(NotFoundError, KeyError):
    """Raised for a missing key when throw_exception_on_missing is set."""

    def __str__(self) -> str:
        # KeyError quotes its message; keep the plain text
        return str(self.args[0]) if self.args else ""


class ConversionError(ConfigurationRuntimeError):
    """Raised when a property value cannot be converted to the requested type."""

    pass


__all__ = [
    "ConfigError",
    "ConfigurationRuntimeError",
    "ConversionError",
    "InvalidArgumentError",
    "InvalidKeyError",
    "NoSuchKeyError",
    "UnsupportedOperationError",
]
