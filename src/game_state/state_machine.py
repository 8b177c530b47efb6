"""
Phase state machine for an encounter.

Only ONE phase may be active at any time. Every transition is validated
against the transition table below and recorded for debugging. VICTORY and
DEFEAT have no outgoing transitions; a new machine is built on reset.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from src.data_models import EncounterPhase, TransitionLog


@dataclass
class StateTransition:
    """Defines a valid phase transition."""

    from_state: EncounterPhase
    to_state: EncounterPhase
    trigger: str
    description: str = ""

    def __hash__(self) -> int:
        return hash((self.from_state, self.to_state, self.trigger))


VALID_TRANSITIONS: list[StateTransition] = [
    StateTransition(
        EncounterPhase.INITIALIZING,
        EncounterPhase.INITIATIVE_DISPLAY,
        "initiative_rolled",
        "Registry and scheduler produced a non-empty turn order",
    ),
    StateTransition(
        EncounterPhase.INITIATIVE_DISPLAY,
        EncounterPhase.PLAYER_TURN,
        "begin_combat_player",
        "Combat begins and the controlled actor acts first",
    ),
    StateTransition(
        EncounterPhase.INITIATIVE_DISPLAY,
        EncounterPhase.EXECUTING_TURN,
        "begin_combat_autonomous",
        "Combat begins and a non-controlled entity acts first",
    ),
    StateTransition(
        EncounterPhase.PLAYER_TURN,
        EncounterPhase.EXECUTING_TURN,
        "end_player_turn",
        "Controlled actor ends their turn",
    ),
    StateTransition(
        EncounterPhase.EXECUTING_TURN,
        EncounterPhase.PLAYER_TURN,
        "next_player_turn",
        "Turn order reaches the controlled actor",
    ),
    StateTransition(
        EncounterPhase.EXECUTING_TURN,
        EncounterPhase.EXECUTING_TURN,
        "next_autonomous_turn",
        "Turn order reaches another non-controlled entity",
    ),
    StateTransition(
        EncounterPhase.EXECUTING_TURN,
        EncounterPhase.VICTORY,
        "all_hostiles_defeated",
        "Every hostile is at 0 HP",
    ),
    StateTransition(
        EncounterPhase.EXECUTING_TURN,
        EncounterPhase.DEFEAT,
        "party_defeated",
        "Controlled actor and every ally are at 0 HP",
    ),
    StateTransition(
        EncounterPhase.PLAYER_TURN,
        EncounterPhase.VICTORY,
        "all_hostiles_defeated",
        "Controlled actor lands the final blow",
    ),
    StateTransition(
        EncounterPhase.PLAYER_TURN,
        EncounterPhase.DEFEAT,
        "party_defeated",
        "Controlled actor's own action ends the party",
    ),
    StateTransition(
        EncounterPhase.INITIATIVE_DISPLAY,
        EncounterPhase.VICTORY,
        "all_hostiles_defeated",
        "Every hostile is already at 0 HP when combat begins",
    ),
    StateTransition(
        EncounterPhase.INITIATIVE_DISPLAY,
        EncounterPhase.DEFEAT,
        "party_defeated",
        "The party is already down when combat begins",
    ),
]


class InvalidTransitionError(Exception):
    """Raised when an invalid phase transition is attempted."""

    pass


class StateMachine:
    """
    Manages encounter phase transitions with validation and history tracking.

    The state machine is authoritative - every phase change goes through
    this class.

    Attributes:
        current_state: The current active phase
        previous_state: The phase before the current transition
        state_history: Complete history of all transitions
    """

    def __init__(self, initial_state: EncounterPhase = EncounterPhase.INITIALIZING):
        """
        Initialize the state machine.

        Args:
            initial_state: The starting phase (default: INITIALIZING)
        """
        self._current_state: EncounterPhase = initial_state
        self._previous_state: Optional[EncounterPhase] = None
        self._state_history: list[TransitionLog] = []
        self._transition_callbacks: dict[str, list[Callable]] = {}
        self._pre_transition_hooks: list[Callable] = []
        self._post_transition_hooks: list[Callable] = []

        # Transition lookup for fast validation
        self._valid_transitions: dict[tuple[EncounterPhase, str], EncounterPhase] = {}
        for transition in VALID_TRANSITIONS:
            key = (transition.from_state, transition.trigger)
            self._valid_transitions[key] = transition.to_state

        self._log_transition(
            from_state="INIT", to_state=initial_state.value, trigger="initialization"
        )

    @property
    def current_state(self) -> EncounterPhase:
        return self._current_state

    @property
    def previous_state(self) -> Optional[EncounterPhase]:
        return self._previous_state

    @property
    def state_history(self) -> list[TransitionLog]:
        return self._state_history.copy()

    def can_transition(self, trigger: str) -> bool:
        """
        Check if a transition is valid from the current phase.

        Args:
            trigger: The trigger event name

        Returns:
            True if the transition is valid, False otherwise
        """
        return (self._current_state, trigger) in self._valid_transitions

    def get_valid_triggers(self) -> list[str]:
        """Get all valid triggers from the current phase."""
        triggers = []
        for (state, trigger), _ in self._valid_transitions.items():
            if state == self._current_state:
                triggers.append(trigger)
        return triggers

    def get_valid_transitions(self) -> list[StateTransition]:
        return [t for t in VALID_TRANSITIONS if t.from_state == self._current_state]

    def trigger_for(self, target: EncounterPhase) -> Optional[str]:
        """
        Find the trigger that moves the current phase to target.

        Returns:
            The trigger name, or None if target is unreachable in one step
        """
        for (state, trigger), to_state in self._valid_transitions.items():
            if state == self._current_state and to_state == target:
                return trigger
        return None

    def transition(self, trigger: str, context: Optional[dict[str, Any]] = None) -> EncounterPhase:
        """
        Attempt to transition to a new phase.

        Args:
            trigger: The trigger event causing the transition
            context: Optional context data for the transition

        Returns:
            The new phase

        Raises:
            InvalidTransitionError: If the transition is not valid
        """
        context = context or {}

        key = (self._current_state, trigger)
        if key not in self._valid_transitions:
            valid_triggers = self.get_valid_triggers()
            raise InvalidTransitionError(
                f"Invalid transition: Cannot trigger '{trigger}' from phase "
                f"'{self._current_state.value}'. Valid triggers: {valid_triggers}"
            )

        new_state = self._valid_transitions[key]
        old_state = self._current_state

        for hook in self._pre_transition_hooks:
            hook(old_state, new_state, trigger, context)

        self._previous_state = old_state
        self._current_state = new_state

        self._log_transition(
            from_state=old_state.value, to_state=new_state.value, trigger=trigger, context=context
        )

        for hook in self._post_transition_hooks:
            hook(old_state, new_state, trigger, context)

        callback_key = f"{old_state.value}:{trigger}"
        if callback_key in self._transition_callbacks:
            for callback in self._transition_callbacks[callback_key]:
                callback(old_state, new_state, context)

        return new_state

    def transition_to(self, target: EncounterPhase, context: Optional[dict[str, Any]] = None) -> EncounterPhase:
        """
        Transition to target using whichever trigger connects the phases.

        Raises:
            InvalidTransitionError: If target is not reachable from the current phase
        """
        trigger = self.trigger_for(target)
        if trigger is None:
            raise InvalidTransitionError(
                f"No transition from '{self._current_state.value}' to '{target.value}'"
            )
        return self.transition(trigger, context)

    def register_callback(self, from_state: EncounterPhase, trigger: str, callback: Callable) -> None:
        """
        Register a callback for a specific transition.

        The callback will be called with (old_state, new_state, context)
        after the transition completes.
        """
        key = f"{from_state.value}:{trigger}"
        if key not in self._transition_callbacks:
            self._transition_callbacks[key] = []
        self._transition_callbacks[key].append(callback)

    def register_pre_hook(self, hook: Callable) -> None:
        """Register a hook called with (old, new, trigger, context) before any transition."""
        self._pre_transition_hooks.append(hook)

    def register_post_hook(self, hook: Callable) -> None:
        """Register a hook called with (old, new, trigger, context) after any transition."""
        self._post_transition_hooks.append(hook)

    def _log_transition(
        self, from_state: str, to_state: str, trigger: str, context: Optional[dict[str, Any]] = None
    ) -> None:
        """Log a phase transition."""
        log_entry = TransitionLog(
            timestamp=datetime.now(),
            from_state=from_state,
            to_state=to_state,
            trigger=trigger,
            context=context or {},
        )
        self._state_history.append(log_entry)

        from src.observability.run_log import get_run_log

        get_run_log().log_transition(
            from_state=from_state,
            to_state=to_state,
            trigger=trigger,
            context=context,
        )

    def get_state_info(self) -> dict[str, Any]:
        """Get information about the current phase for display/debugging."""
        return {
            "current_state": self._current_state.value,
            "previous_state": self._previous_state.value if self._previous_state else None,
            "valid_triggers": self.get_valid_triggers(),
            "transition_count": len(self._state_history),
            "last_transition": self._state_history[-1] if self._state_history else None,
        }

    def is_terminal(self) -> bool:
        return self._current_state in {EncounterPhase.VICTORY, EncounterPhase.DEFEAT}

    def is_player_turn(self) -> bool:
        return self._current_state == EncounterPhase.PLAYER_TURN

    def __repr__(self) -> str:
        return f"StateMachine(current={self._current_state.value}, previous={self._previous_state})"
