"""
Observability for the combat engine.

Provides an ordered log of every deterministic event (rolls, phase
transitions, resolved actions).
"""

from src.observability.run_log import (
    RunLog,
    LogEvent,
    EventType,
    RollEvent,
    TransitionEvent,
    ActionEvent,
    get_run_log,
    reset_run_log,
)

__all__ = [
    "RunLog",
    "LogEvent",
    "EventType",
    "RollEvent",
    "TransitionEvent",
    "ActionEvent",
    "get_run_log",
    "reset_run_log",
]
