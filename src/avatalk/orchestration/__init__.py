"""Orchestration layer modules (FSM, transcript assembly)."""
from .fsm import Event, FiniteStateMachine, State, create_session_fsm
from .transcript import TranscriptAssembler

__all__ = [
    "FiniteStateMachine",
    "State",
    "Event",
    "create_session_fsm",
    "TranscriptAssembler",
]
