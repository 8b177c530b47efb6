"""Encounter phase management module."""

from src.game_state.state_machine import (
    StateMachine,
    StateTransition,
    InvalidTransitionError,
    VALID_TRANSITIONS,
)

__all__ = [
    "StateMachine",
    "StateTransition",
    "InvalidTransitionError",
    "VALID_TRANSITIONS",
]
