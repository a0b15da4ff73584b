"""Reconnect state machine for the session supervisor."""

import logging
from enum import Enum, auto
from typing import Callable

logger = logging.getLogger(__name__)


class ReconnectState(Enum):
    """
    Supervisor states.

    State transitions:
        IDLE -> RECONNECTING -> IDLE

    RECONNECTING is entered before the first await of a reconnect attempt
    and left in a finally block, whatever the outcome.
    """

    IDLE = auto()
    RECONNECTING = auto()

    def __str__(self) -> str:
        return self.name


class InvalidStateTransition(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_state: ReconnectState, to_state: ReconnectState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid state transition: {from_state.name} -> {to_state.name}"
        )


StateTransitionCallback = Callable[[ReconnectState, ReconnectState], None]


class ReconnectStateMachine:
    """
    Guards against overlapping reconnect attempts.

    Enforces valid transitions and notifies listeners when they occur.
    """

    VALID_TRANSITIONS: dict[ReconnectState, list[ReconnectState]] = {
        ReconnectState.IDLE: [ReconnectState.RECONNECTING],
        ReconnectState.RECONNECTING: [ReconnectState.IDLE],
    }

    def __init__(self, initial_state: ReconnectState = ReconnectState.IDLE):
        self._state = initial_state
        self._listeners: list[StateTransitionCallback] = []

    @property
    def state(self) -> ReconnectState:
        return self._state

    @property
    def is_reconnecting(self) -> bool:
        return self._state == ReconnectState.RECONNECTING

    def can_transition_to(self, new_state: ReconnectState) -> bool:
        return new_state in self.VALID_TRANSITIONS.get(self._state, [])

    def transition(self, new_state: ReconnectState) -> None:
        """
        Transition to a new state.

        Raises:
            InvalidStateTransition: If the transition is not valid.
        """
        if not self.can_transition_to(new_state):
            raise InvalidStateTransition(self._state, new_state)

        old_state = self._state
        self._state = new_state

        for listener in self._listeners:
            try:
                listener(old_state, new_state)
            except Exception:
                logger.exception(f"State listener failed on {old_state} -> {new_state}")

    def on_transition(self, callback: StateTransitionCallback) -> None:
        """Register a callback called with (old_state, new_state)."""
        self._listeners.append(callback)

    def remove_listener(self, callback: StateTransitionCallback) -> None:
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    def __repr__(self) -> str:
        return f"ReconnectStateMachine(state={self._state!r})"
