"""
Outbound events and the sink interface collaborators implement to receive them.

The engine owns HP only for encounter-local hostiles. Changes to the
controlled actor and allies are reported through an EventSink so the
character-progression layer can update its own store.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from src.data_models import EncounterPhase, LogEntry


# =============================================================================
# EVENT RECORDS
# =============================================================================


@dataclass(frozen=True)
class DamageEvent:
    """Damage dealt to one target."""
    target_id: str
    amount: int
    source_id: str = ""
    damage_type: str = ""
    critical: bool = False


@dataclass(frozen=True)
class HealingEvent:
    """Healing applied to one target."""
    target_id: str
    amount: int
    source_id: str = ""


@dataclass(frozen=True)
class StatusEffectApplication:
    """A status effect placed on one target."""
    target_id: str
    effect_type: str
    duration_rounds: Optional[int] = None
    source_id: str = ""


@dataclass(frozen=True)
class SlotConsumption:
    """A spell slot spent by a caster."""
    caster_id: str
    slot_level: int
    spell_id: str = ""


# =============================================================================
# SINK INTERFACE
# =============================================================================


@runtime_checkable
class EventSink(Protocol):
    """
    Protocol for receivers of engine output.

    Implementations:
    - NullEventSink when nothing outside the engine is listening
    - RecordingEventSink for tests and the CLI
    """

    def on_damage(self, event: DamageEvent, hp_after: int) -> None:
        ...

    def on_healing(self, event: HealingEvent, hp_after: int) -> None:
        ...

    def on_status_effect(self, event: StatusEffectApplication) -> None:
        ...

    def on_slot_consumed(self, event: SlotConsumption, remaining: int) -> None:
        ...

    def on_log(self, entry: LogEntry) -> None:
        ...

    def on_phase_change(self, old_phase: EncounterPhase, new_phase: EncounterPhase) -> None:
        ...


class NullEventSink:
    """No-op sink used when no collaborator is attached."""

    def on_damage(self, event: DamageEvent, hp_after: int) -> None:
        pass

    def on_healing(self, event: HealingEvent, hp_after: int) -> None:
        pass

    def on_status_effect(self, event: StatusEffectApplication) -> None:
        pass

    def on_slot_consumed(self, event: SlotConsumption, remaining: int) -> None:
        pass

    def on_log(self, entry: LogEntry) -> None:
        pass

    def on_phase_change(self, old_phase: EncounterPhase, new_phase: EncounterPhase) -> None:
        pass


@dataclass
class RecordingEventSink:
    """
    Sink that keeps everything it receives, in order.

    Also acts as a minimal character store: friendly HP reported through
    on_damage/on_healing is kept in hp_by_id so callers can re-sync.
    """

    damage: list[DamageEvent] = field(default_factory=list)
    healing: list[HealingEvent] = field(default_factory=list)
    status_effects: list[StatusEffectApplication] = field(default_factory=list)
    slots: list[SlotConsumption] = field(default_factory=list)
    log: list[LogEntry] = field(default_factory=list)
    phases: list[tuple[EncounterPhase, EncounterPhase]] = field(default_factory=list)
    hp_by_id: dict[str, int] = field(default_factory=dict)

    def on_damage(self, event: DamageEvent, hp_after: int) -> None:
        self.damage.append(event)
        self.hp_by_id[event.target_id] = hp_after

    def on_healing(self, event: HealingEvent, hp_after: int) -> None:
        self.healing.append(event)
        self.hp_by_id[event.target_id] = hp_after

    def on_status_effect(self, event: StatusEffectApplication) -> None:
        self.status_effects.append(event)

    def on_slot_consumed(self, event: SlotConsumption, remaining: int) -> None:
        self.slots.append(event)

    def on_log(self, entry: LogEntry) -> None:
        self.log.append(entry)

    def on_phase_change(self, old_phase: EncounterPhase, new_phase: EncounterPhase) -> None:
        self.phases.append((old_phase, new_phase))

    def to_dict(self) -> dict[str, Any]:
        return {
            "damage": len(self.damage),
            "healing": len(self.healing),
            "status_effects": len(self.status_effects),
            "slots": len(self.slots),
            "log": len(self.log),
            "phases": [(a.value, b.value) for a, b in self.phases],
        }
