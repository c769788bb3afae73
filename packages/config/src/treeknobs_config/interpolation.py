"""Variable interpolation in configuration values."""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Mapping
from typing import Any, Dict, List, Set

from .exceptions import ConfigurationRuntimeError

Lookup = Callable[[str], Any]


def environment_lookup(name: str) -> str | None:
    """Lookup resolving environment variables."""
    return os.environ.get(name)


class ConfigurationInterpolator:
    """Resolves ``${...}`` variables in configuration values.

    Supports patterns:
    - ${name} - resolved by the default lookups, then the parent interpolator
    - ${prefix:name} - resolved by the lookup registered for ``prefix``
    - ${name:-default} - ``default`` if the variable cannot be resolved

    A value consisting of a single variable is replaced by the resolved
    object itself, keeping its type. Variables inside longer strings are
    replaced by their string form. Variables that cannot be resolved are
    left untouched. Resolved values are interpolated again; a variable
    referring back to itself raises ``ConfigurationRuntimeError``.

    Args:
        prefix_lookups: Lookups by prefix. ``env`` is always available unless
            overridden.
        default_lookups: Lookups consulted in order for unprefixed variables.
    """

    VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
    DEFAULT_SEPARATOR = ":-"
    PREFIX_SEPARATOR = ":"

    def __init__(
        self,
        prefix_lookups: Mapping[str, Lookup] | None = None,
        default_lookups: List[Lookup] | None = None,
    ) -> None:
        self._prefix_lookups: Dict[str, Lookup] = {"env": environment_lookup}
        if prefix_lookups:
            self._prefix_lookups.update(prefix_lookups)
        self._default_lookups: List[Lookup] = list(default_lookups or [])
        self._parent: ConfigurationInterpolator | None = None

    @property
    def prefix_lookups(self) -> Dict[str, Lookup]:
        return dict(self._prefix_lookups)

    def register_lookup(self, prefix: str, lookup: Lookup) -> None:
        self._prefix_lookups[prefix] = lookup

    def deregister_lookup(self, prefix: str) -> bool:
        return self._prefix_lookups.pop(prefix, None) is not None

    def add_default_lookup(self, lookup: Lookup) -> None:
        self._default_lookups.append(lookup)

    def remove_default_lookup(self, lookup: Lookup) -> bool:
        try:
            self._default_lookups.remove(lookup)
        except ValueError:
            return False
        return True

    @property
    def parent_interpolator(self) -> ConfigurationInterpolator | None:
        return self._parent

    def set_parent_interpolator(self, parent: ConfigurationInterpolator | None) -> None:
        """Set the interpolator consulted for variables not resolved here.

        Raises:
            ConfigurationRuntimeError: If a different parent was already set.
        """
        if self._parent is not None and parent is not self._parent:
            raise ConfigurationRuntimeError("Parent interpolator is already set")
        if parent is self:
            raise ConfigurationRuntimeError("Interpolator cannot be its own parent")
        self._parent = parent

    def lookup(self, variable: str) -> Any:
        """Resolve a variable (without ``${}``), None if it is unknown."""
        variable, _, default = variable.partition(self.DEFAULT_SEPARATOR)
        value = self._resolve(variable)
        if value is None and default:
            return default
        return value

    def _resolve(self, variable: str) -> Any:
        prefix, sep, name = variable.partition(self.PREFIX_SEPARATOR)
        if sep and prefix in self._prefix_lookups:
            value = self._prefix_lookups[prefix](name)
            if value is not None:
                return value
        for lookup in self._default_lookups:
            value = lookup(variable)
            if value is not None:
                return value
        if self._parent is not None:
            return self._parent._resolve(variable)
        return None

    def interpolate(self, value: Any) -> Any:
        """Replace the variables in ``value``; non-string values are returned as is."""
        return self._interpolate(value, set())

    def _interpolate(self, value: Any, resolving: Set[str]) -> Any:
        if not isinstance(value, str) or "${" not in value:
            return value

        match = self.VAR_PATTERN.fullmatch(value)
        if match:
            return self._resolve_variable(match, resolving)

        def replacer(m: re.Match) -> str:
            return str(self._resolve_variable(m, resolving))

        return self.VAR_PATTERN.sub(replacer, value)

    def _resolve_variable(self, match: re.Match, resolving: Set[str]) -> Any:
        variable = match.group(1)
        if variable in resolving:
            raise ConfigurationRuntimeError(
                f"Cyclic variable reference: {variable}",
                context={"variable": variable, "resolving": sorted(resolving)},
            )
        value = self.lookup(variable)
        if value is None:
            return match.group(0)
        return self._interpolate(value, resolving | {variable})


__all__ = ["ConfigurationInterpolator", "environment_lookup"]
