"""
Event bus shared by the gateway stores.

Stores mutate their state and publish while holding the bus lock, so a
subscriber never receives an event before the mutation is visible to reads,
and ``attach`` can replay a consistent snapshot before live events flow.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

# Live events
MESSAGE_APPENDED = "message-appended"
LOG_CLEARED = "log-cleared"
TOOL_ADDED = "tool-added"
TOOL_REMOVED = "tool-removed"
PROVIDER_ADDED = "provider-added"
PROVIDER_REMOVED = "provider-removed"
CONFIG_UPDATED = "config-updated"

# Snapshot events, only sent on attach
SNAPSHOT_CONFIG = "config"
SNAPSHOT_MESSAGES = "messages"
SNAPSHOT_TOOLS = "tools"
SNAPSHOT_PROVIDERS = "mcpServers"


@dataclass(frozen=True)
class Event:
    """A single notification pushed to subscribers."""

    type: str
    payload: Any = None


Listener = Callable[[Event], None]


class Subscription:
    """Handle returned by ``EventBus.subscribe``."""

    def __init__(self, bus: "EventBus", listener: Listener, types: Optional[frozenset]):
        self._bus = bus
        self.listener = listener
        self.types = types

    def accepts(self, event: Event) -> bool:
        return self.types is None or event.type in self.types

    def unsubscribe(self) -> None:
        self._bus._remove(self)


class EventBus:
    """Synchronous multi-subscriber event bus."""

    def __init__(self):
        self.lock = threading.RLock()
        self._subscriptions: list[Subscription] = []

    def subscribe(
        self, listener: Listener, types: Optional[Iterable[str]] = None
    ) -> Subscription:
        """Register a listener, optionally filtered to a set of event types."""
        subscription = Subscription(
            self, listener, frozenset(types) if types is not None else None
        )
        with self.lock:
            self._subscriptions.append(subscription)
        return subscription

    def attach(
        self, listener: Listener, snapshot: Callable[[], list[Event]]
    ) -> Subscription:
        """Replay ``snapshot()`` to the listener, then subscribe it to live events.

        Runs under the bus lock so no mutation can land between the replay
        and the subscription.
        """
        with self.lock:
            for event in snapshot():
                self._deliver(Subscription(self, listener, None), event)
            return self.subscribe(listener)

    def publish(self, event_type: str, payload: Any = None) -> None:
        event = Event(event_type, payload)
        with self.lock:
            for subscription in list(self._subscriptions):
                if subscription.accepts(event):
                    self._deliver(subscription, event)

    def _deliver(self, subscription: Subscription, event: Event) -> None:
        try:
            subscription.listener(event)
        except Exception as e:
            logger.warning("Event listener failed on '%s': %s", event.type, e)

    def _remove(self, subscription: Subscription) -> None:
        with self.lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def __len__(self) -> int:
        return len(self._subscriptions)
