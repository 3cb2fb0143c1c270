"""
Session state machine.

Tracks the connection phase of one client and handles transitions.
"""

from enum import Enum, auto
from typing import Callable, Dict, List, Optional, Set
from dataclasses import dataclass

from .event_bus import EventBus, EventType
from ..logging_config import get_logger

logger = get_logger(__name__)


class SessionState(Enum):
    """Client session states."""
    DISCONNECTED = auto()       # No socket
    SOCKET_OPEN = auto()        # Socket open, server has not spoken yet
    CAPTCHA_WAITING = auto()    # Server wants a captcha token
    CAPTCHA_VERIFYING = auto()  # Token sent, server is checking it
    CAPTCHA_VERIFIED = auto()   # Token accepted
    CAPTCHA_OK = auto()         # Cleared to join a world
    CAPTCHA_INVALID = auto()    # Token rejected
    AWAITING_ID = auto()        # Join sent, waiting for our player id
    WORLD_JOINED = auto()       # In a world
    DESTROYED = auto()          # Terminal, never reconnects


CAPTCHA_STATES: Set[SessionState] = {
    SessionState.CAPTCHA_WAITING,
    SessionState.CAPTCHA_VERIFYING,
    SessionState.CAPTCHA_VERIFIED,
    SessionState.CAPTCHA_OK,
    SessionState.CAPTCHA_INVALID,
}


@dataclass
class StateTransition:
    """Represents a state transition."""
    from_state: Optional[SessionState]
    to_state: SessionState
    data: Optional[dict]


class SessionStateMachine:
    """Manages session state transitions."""

    # Valid state transitions. DISCONNECTED and DESTROYED are handled separately.
    VALID_TRANSITIONS: Dict[SessionState, List[SessionState]] = {
        SessionState.DISCONNECTED: [SessionState.SOCKET_OPEN],
        SessionState.SOCKET_OPEN: [
            SessionState.CAPTCHA_WAITING,
            SessionState.CAPTCHA_VERIFYING,
            SessionState.CAPTCHA_VERIFIED,
            SessionState.CAPTCHA_OK,
            SessionState.CAPTCHA_INVALID,
            SessionState.AWAITING_ID,
        ],
        SessionState.CAPTCHA_WAITING: [
            SessionState.CAPTCHA_VERIFYING,
            SessionState.CAPTCHA_VERIFIED,
            SessionState.CAPTCHA_OK,
            SessionState.CAPTCHA_INVALID,
        ],
        SessionState.CAPTCHA_VERIFYING: [
            SessionState.CAPTCHA_WAITING,
            SessionState.CAPTCHA_VERIFIED,
            SessionState.CAPTCHA_OK,
            SessionState.CAPTCHA_INVALID,
        ],
        SessionState.CAPTCHA_VERIFIED: [SessionState.CAPTCHA_OK, SessionState.CAPTCHA_INVALID],
        SessionState.CAPTCHA_OK: [SessionState.AWAITING_ID],
        SessionState.CAPTCHA_INVALID: [],
        SessionState.AWAITING_ID: [SessionState.WORLD_JOINED],
        SessionState.WORLD_JOINED: [SessionState.AWAITING_ID],
        SessionState.DESTROYED: [],
    }

    def __init__(self, event_bus: EventBus):
        self._event_bus = event_bus
        self._current_state: SessionState = SessionState.DISCONNECTED
        self._previous_state: Optional[SessionState] = None
        self._transition_listeners: Dict[SessionState, List[Callable]] = {}

    @property
    def current_state(self) -> SessionState:
        """Get the current state."""
        return self._current_state

    @property
    def previous_state(self) -> Optional[SessionState]:
        """Get the previous state."""
        return self._previous_state

    @property
    def is_open(self) -> bool:
        """Check if a socket is open."""
        return self._current_state not in {SessionState.DISCONNECTED, SessionState.DESTROYED}

    @property
    def is_in_world(self) -> bool:
        return self._current_state == SessionState.WORLD_JOINED

    @property
    def is_destroyed(self) -> bool:
        return self._current_state == SessionState.DESTROYED

    def can_transition_to(self, state: SessionState) -> bool:
        """Check if transition to given state is valid."""
        if self._current_state == SessionState.DESTROYED:
            return False
        if state in (SessionState.DESTROYED, SessionState.DISCONNECTED):
            return state != self._current_state
        return state in self.VALID_TRANSITIONS.get(self._current_state, [])

    def transition_to(self, state: SessionState, data: Optional[dict] = None) -> bool:
        """
        Transition to a new state.

        Args:
            state: The state to transition to
            data: Optional data attached to the transition event

        Returns:
            True if transition was successful, False otherwise
        """
        if not self.can_transition_to(state):
            logger.debug(f"Rejected transition {self._current_state.name} -> {state.name}")
            return False

        self._previous_state = self._current_state
        self._current_state = state

        transition = StateTransition(
            from_state=self._previous_state,
            to_state=state,
            data=data
        )

        for listener in self._transition_listeners.get(state, []):
            try:
                listener(transition)
            except Exception:
                logger.exception("Error in state transition listener")

        self._event_bus.emit(
            EventType.STATE_CHANGED,
            {
                "from": self._previous_state.name,
                "to": state.name,
                "data": data
            },
            "state_machine"
        )

        return True

    def on_transition_to(self, state: SessionState, callback: Callable[[StateTransition], None]) -> None:
        """Register a callback for transitions to a specific state."""
        self._transition_listeners.setdefault(state, []).append(callback)
