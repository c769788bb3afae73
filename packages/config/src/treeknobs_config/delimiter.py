"""List delimiter handling for property values."""

from __future__ import annotations

from typing import Any, List, Protocol, runtime_checkable


@runtime_checkable
class ListDelimiterHandler(Protocol):
    """Splits single values into lists and escapes values for storage."""

    def split(self, value: str, trim: bool = True) -> List[str]: ...

    def escape(self, value: Any) -> Any: ...

    def to_values(self, value: Any) -> List[Any]: ...


class DisabledListDelimiterHandler:
    """Handler that never splits; lists and tuples still yield their items."""

    def split(self, value: str, trim: bool = True) -> List[str]:
        return [value.strip() if trim else value]

    def escape(self, value: Any) -> Any:
        return value

    def to_values(self, value: Any) -> List[Any]:
        """Flatten a property value into the list of values to store."""
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            values: List[Any] = []
            for item in value:
                values.extend(self.to_values(item))
            return values
        if isinstance(value, str):
            return self._split_value(value)
        return [value]

    def _split_value(self, value: str) -> List[Any]:
        return [value]


class DefaultListDelimiterHandler(DisabledListDelimiterHandler):
    """Splits strings at a delimiter character.

    A backslash escapes the delimiter (``a\\,b`` stays one value ``a,b``)
    and itself (``\\\\``).

    Args:
        delimiter: The delimiter character.
    """

    ESCAPE = "\\"

    def __init__(self, delimiter: str = ",") -> None:
        self.delimiter = delimiter

    def split(self, value: str, trim: bool = True) -> List[str]:
        parts: List[str] = []
        current: List[str] = []
        chars = iter(value)
        for char in chars:
            if char == self.ESCAPE:
                following = next(chars, None)
                if following is None:
                    current.append(char)
                elif following in (self.delimiter, self.ESCAPE):
                    current.append(following)
                else:
                    current.append(char)
                    current.append(following)
            elif char == self.delimiter:
                parts.append("".join(current))
                current = []
            else:
                current.append(char)
        parts.append("".join(current))
        return [part.strip() for part in parts] if trim else parts

    def escape(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        return value.replace(self.ESCAPE, self.ESCAPE * 2).replace(
            self.delimiter, self.ESCAPE + self.delimiter
        )

    def _split_value(self, value: str) -> List[Any]:
        return list(self.split(value))


__all__ = [
    "DefaultListDelimiterHandler",
    "DisabledListDelimiterHandler",
    "ListDelimiterHandler",
]
