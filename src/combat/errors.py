"""
Exception types raised by the combat engine.

Only InvalidEncounterDefinition stops an encounter from starting. Every
other error is recoverable: the offending request is rejected and the
encounter state is left as it was, apart from log entries.
"""

from typing import Optional


class CombatError(Exception):
    """Base class for all combat engine errors."""
    pass


class InvalidEncounterDefinition(CombatError):
    """Raised when no hostile group in an encounter definition resolves."""

    def __init__(self, message: str, skipped_groups: Optional[list[str]] = None):
        super().__init__(message)
        self.skipped_groups = skipped_groups or []


class TemplateNotFoundError(CombatError):
    """Raised by the hostile template catalog for an unknown type key."""

    def __init__(self, template_key: str):
        super().__init__(f"Hostile template not found: {template_key}")
        self.template_key = template_key


class UnknownHostileType(CombatError):
    """A single hostile group could not be resolved and was skipped."""

    def __init__(self, hostile_type: str, count: int = 1):
        super().__init__(f"Unknown hostile type '{hostile_type}' (x{count}) skipped")
        self.hostile_type = hostile_type
        self.count = count


class NoLegalTarget(CombatError):
    """An action has no valid target, or the chosen target is not legal."""
    pass


class NoSlotAvailable(CombatError):
    """The caster has no spell slot at or above the spell's level."""

    def __init__(self, caster_id: str, spell_id: str, level: int):
        super().__init__(f"{caster_id} has no slot of level {level}+ for {spell_id}")
        self.caster_id = caster_id
        self.spell_id = spell_id
        self.level = level


class MissingEntityForTurn(CombatError):
    """The combatant scheduled for the current turn is not in the registry."""

    def __init__(self, combatant_id: str):
        super().__init__(f"No combatant '{combatant_id}' for the current turn")
        self.combatant_id = combatant_id


class ActionNotAllowed(CombatError):
    """A player intent arrived outside the player's turn or with its slot spent."""
    pass
