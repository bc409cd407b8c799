"""Finite State Machine (FSM) for the session controller."""
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List

from ..logging_config import setup_logger

logger = setup_logger("avatalk.fsm")


class State(Enum):
    """Controller states."""
    IDLE = "idle"
    CONNECTING = "connecting"
    LIVE = "live"
    ENDING = "ending"


class Event(Enum):
    """Controller lifecycle events."""
    START_REQUESTED = "start_requested"
    CONNECTED = "connected"
    CONNECT_FAILED = "connect_failed"
    END_REQUESTED = "end_requested"
    TEARDOWN_COMPLETE = "teardown_complete"


@dataclass
class FSMTransition:
    """FSM transition definition."""
    from_state: State
    event: Event
    to_state: State


class FiniteStateMachine:
    """Table-driven state machine.

    Transitions run inline on the caller's task; there is no event queue, so
    events are handled in the order they are submitted.
    """

    def __init__(self, initial_state: State = State.IDLE):
        self.current_state = initial_state
        self._transitions: List[FSMTransition] = []
        self._state_handlers: Dict[State, Callable] = {}

    def add_transition(
        self,
        from_state: State,
        event: Event,
        to_state: State
    ) -> None:
        """Add a state transition."""
        self._transitions.append(FSMTransition(from_state, event, to_state))

    def add_state_handler(self, state: State, handler: Callable) -> None:
        """Add a handler for entering a state."""
        self._state_handlers[state] = handler

    async def transition(self, event: Event) -> bool:
        """Process an event and transition state."""
        for transition in self._transitions:
            if (
                transition.from_state == self.current_state
                and transition.event == event
            ):
                old_state = self.current_state
                new_state = transition.to_state

                # Update state
                self.current_state = new_state
                logger.info(f"FSM: {old_state.value} -> {new_state.value} via {event.value}")

                # Call state handler
                if new_state in self._state_handlers:
                    handler = self._state_handlers[new_state]
                    if inspect.iscoroutinefunction(handler):
                        await handler()
                    else:
                        handler()

                return True

        logger.warning(f"No valid transition: {event.value} from {self.current_state.value}")
        return False


def create_session_fsm() -> FiniteStateMachine:
    """Create the session lifecycle FSM: idle -> connecting -> live -> ending -> idle."""
    fsm = FiniteStateMachine(initial_state=State.IDLE)

    # IDLE -> CONNECTING: start requested
    fsm.add_transition(State.IDLE, Event.START_REQUESTED, State.CONNECTING)

    # CONNECTING -> LIVE: transport connected
    fsm.add_transition(State.CONNECTING, Event.CONNECTED, State.LIVE)

    # CONNECTING -> IDLE: token, permission or connect failure
    fsm.add_transition(State.CONNECTING, Event.CONNECT_FAILED, State.IDLE)

    # CONNECTING/LIVE -> ENDING: user end or stream disconnected
    fsm.add_transition(State.CONNECTING, Event.END_REQUESTED, State.ENDING)
    fsm.add_transition(State.LIVE, Event.END_REQUESTED, State.ENDING)

    # ENDING -> IDLE: teardown finished
    fsm.add_transition(State.ENDING, Event.TEARDOWN_COMPLETE, State.IDLE)

    return fsm
