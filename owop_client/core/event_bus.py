"""
Core event bus for client communication.

Provides a pub/sub system that decouples frame processing from the code
reacting to it. Regular and one-shot subscriptions share one record type.
"""

from typing import Callable, Dict, List, Any, Optional
from enum import Enum, auto
import asyncio
import inspect
from dataclasses import dataclass, field

from ..logging_config import get_logger

logger = get_logger(__name__)


class EventType(Enum):
    """Client event types."""
    # Connection events
    OPEN = auto()
    CLOSE = auto()
    DESTROY = auto()
    STATE_CHANGED = auto()

    # Session events
    JOIN = auto()
    ID = auto()
    RANK = auto()
    CAPTCHA = auto()
    PQUOTA = auto()
    TELEPORT = auto()

    # Raw traffic
    RAW_MESSAGE = auto()
    DECODE_ERROR = auto()

    # Player events
    CONNECT = auto()
    UPDATE = auto()
    DISCONNECT = auto()

    # World events
    PIXEL = auto()
    CHUNK = auto()
    CHUNK_PROTECT = auto()

    # Chat events
    MESSAGE = auto()


@dataclass
class Event:
    """Event data structure."""
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    source: Optional[str] = None


@dataclass(eq=False)
class Subscription:
    """A handler registered for one event type."""
    handler: Callable[[Event], Any]
    once: bool = False


class EventBus:
    """Event bus shared by the components of one client."""

    def __init__(self):
        self._subscriptions: Dict[EventType, List[Subscription]] = {}

    def subscribe(self, event_type: EventType, handler: Callable[[Event], None]) -> Subscription:
        """Subscribe a handler to an event type."""
        return self._add(event_type, Subscription(handler))

    def subscribe_once(self, event_type: EventType, handler: Callable[[Event], None]) -> Subscription:
        """Subscribe a handler that will be called only once."""
        return self._add(event_type, Subscription(handler, once=True))

    def _add(self, event_type: EventType, subscription: Subscription) -> Subscription:
        self._subscriptions.setdefault(event_type, []).append(subscription)
        return subscription

    def unsubscribe(self, event_type: EventType, handler: Callable[[Event], None]) -> None:
        """Unsubscribe every registration of a handler from an event type."""
        subscriptions = self._subscriptions.get(event_type)
        if subscriptions:
            subscriptions[:] = [s for s in subscriptions if s.handler is not handler]

    def subscriber_count(self, event_type: EventType) -> int:
        return len(self._subscriptions.get(event_type, []))

    def _take(self, event_type: EventType) -> List[Subscription]:
        """Snapshot the subscriptions to call and drop the one-shot ones."""
        subscriptions = self._subscriptions.get(event_type)
        if not subscriptions:
            return []
        snapshot = list(subscriptions)
        if any(s.once for s in snapshot):
            subscriptions[:] = [s for s in subscriptions if not s.once]
        return snapshot

    def emit(self, event_type: EventType, data: Optional[Dict[str, Any]] = None, source: Optional[str] = None) -> None:
        """
        Emit an event to all subscribers.

        Note: Async handlers will be scheduled as tasks on the running event loop.
        For guaranteed async execution, use emit_async() instead.
        """
        event = Event(type=event_type, data=data or {}, source=source)

        for subscription in self._take(event_type):
            handler = subscription.handler
            try:
                if inspect.iscoroutinefunction(handler):
                    try:
                        loop = asyncio.get_running_loop()
                        loop.create_task(handler(event))
                    except RuntimeError:
                        logger.warning(f"Async handler {handler} registered but no event loop running")
                else:
                    handler(event)
            except Exception:
                logger.exception(f"Error in {event_type.name} handler")

    async def emit_async(self, event_type: EventType, data: Optional[Dict[str, Any]] = None, source: Optional[str] = None) -> None:
        """Emit an event, awaiting async handlers in order."""
        event = Event(type=event_type, data=data or {}, source=source)

        for subscription in self._take(event_type):
            handler = subscription.handler
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(event)
                else:
                    handler(event)
            except Exception:
                logger.exception(f"Error in async {event_type.name} handler")

    def clear(self, event_type: Optional[EventType] = None) -> None:
        """Clear all handlers for an event type, or all handlers if None."""
        if event_type:
            self._subscriptions.pop(event_type, None)
        else:
            self._subscriptions.clear()
