"""Core systems for the pixel world client."""

from .event_bus import EventBus, EventType, Event, Subscription
from .state_machine import SessionStateMachine, SessionState, StateTransition

__all__ = [
    "EventBus",
    "EventType",
    "Event",
    "Subscription",
    "SessionStateMachine",
    "SessionState",
    "StateTransition",
]
