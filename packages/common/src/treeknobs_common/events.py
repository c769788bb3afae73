"""Change events and synchronous listener lists.

Events describe a change that already happened: a node model swapped its
root, a configuration was updated, a flat configuration source was
modified. Listeners are plain callables registered with a ``ListenerList``
and are invoked synchronously, in registration order, after the change.

Example:
    ```python
    from treeknobs_common.events import Event, EventType, ListenerList

    listeners = ListenerList("configuration")
    received = []
    listeners.add(received.append)

    listeners.fire(Event(
        type=EventType.SET_PROPERTY,
        topic="configuration",
        payload={"key": "database.host", "value": "localhost"},
    ))
    assert received[0].payload["key"] == "database.host"
    ```
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of change events."""

    ADD_PROPERTY = "add_property"
    SET_PROPERTY = "set_property"
    CLEAR_PROPERTY = "clear_property"
    CLEAR_TREE = "clear_tree"
    CLEAR = "clear"
    ADD_NODES = "add_nodes"
    ROOT_REPLACED = "root_replaced"
    NODE_REPLACED = "node_replaced"
    SOURCE_CHANGED = "source_changed"


@dataclass
class Event:
    """An event message describing a completed change.

    Attributes:
        type: The type of change
        topic: The component family that fired the event
            (``"model"``, ``"configuration"``, ``"source"``)
        payload: The event data as a dictionary
        timestamp: When the event was created (defaults to now)
        event_id: Unique identifier for this event (auto-generated)
        source: Optional reference to the object that fired the event
        metadata: Additional metadata for the event
    """

    type: EventType
    topic: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    source: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary.

        The ``source`` object is not part of the dictionary.

        Returns:
            Dictionary representation with ISO timestamp and string enum.
        """
        return {
            "type": self.type.value,
            "topic": self.topic,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
            "event_id": self.event_id,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        """Create event from dictionary.

        Args:
            data: Dictionary with event data

        Returns:
            Event instance
        """
        return cls(
            type=EventType(data["type"]),
            topic=data["topic"],
            payload=data.get("payload", {}),
            timestamp=(
                datetime.fromisoformat(data["timestamp"])
                if isinstance(data.get("timestamp"), str)
                else data.get("timestamp", datetime.now(timezone.utc))
            ),
            event_id=data.get("event_id", str(uuid.uuid4())),
            metadata=data.get("metadata", {}),
        )


class ListenerList:
    """Thread-safe list of synchronous event listeners.

    Listeners are called outside the internal lock. An exception raised by
    a listener is logged and does not prevent delivery to the remaining
    listeners.
    """

    def __init__(self, name: str = "listeners") -> None:
        """Initialize an empty listener list.

        Args:
            name: Name used in log messages
        """
        self._name = name
        self._listeners: list[Callable[[Event], Any]] = []
        self._lock = threading.RLock()

    def add(self, listener: Callable[[Event], Any]) -> None:
        """Register a listener."""
        with self._lock:
            self._listeners.append(listener)

    def remove(self, listener: Callable[[Event], Any]) -> bool:
        """Unregister a listener.

        Returns:
            True if the listener was registered, False otherwise
        """
        with self._lock:
            try:
                self._listeners.remove(listener)
                return True
            except ValueError:
                return False

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def fire(self, event: Event) -> None:
        """Deliver an event to all registered listeners.

        Args:
            event: The event to deliver
        """
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Error in %s listener for event %s",
                    self._name,
                    event.type.value,
                )

        logger.debug(
            "Fired %s event %s to %d %s",
            event.type.value,
            event.event_id[:8],
            len(listeners),
            self._name,
        )


__all__ = ["Event", "EventType", "ListenerList"]
