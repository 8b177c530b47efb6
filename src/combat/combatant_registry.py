"""
Combatant Registry for Grid Skirmish.

Normalizes the controlled actor, allies and hostile groups into uniform
Combatant records with stable ids, and is the single source of truth for
id -> combatant and position <-> combatant lookups.

Id scheme:
- "player" for the controlled actor
- "ally:<key>" for allies
- "enemy:<type>:<index>" for hostiles, index counted per type

The registry is also the only component that applies resolution events to
combatants: damage, healing, status effects and spell-slot consumption.
"""

from typing import Iterable, Optional
import logging

from src.combat.errors import InvalidEncounterDefinition, TemplateNotFoundError, UnknownHostileType
from src.combat.event_sink import (
    DamageEvent,
    EventSink,
    HealingEvent,
    NullEventSink,
    SlotConsumption,
    StatusEffectApplication,
)
from src.combat.resolution import ResolutionResult
from src.content_loader.action_catalog import ActionCatalog, get_action_catalog
from src.content_loader.hostile_registry import HostileRegistry, get_hostile_registry
from src.data_models import (
    CONTROLLED_ACTOR_ID,
    CharacterSnapshot,
    Combatant,
    CombatantKind,
    EncounterDefinition,
    EncounterPhase,
    EncounterState,
    LogCategory,
    LogEntry,
    Position,
    SpellSlotPool,
    StatusEffect,
    Team,
)
from src.grid.battle_grid import BattleGrid, MovementResult

logger = logging.getLogger(__name__)


def hostile_id(template_key: str, index: int) -> str:
    return f"enemy:{template_key}:{index}"


def ally_id(key: str) -> str:
    return f"ally:{key}"


def estimate_encounter_difficulty(
    definition: EncounterDefinition, hostile_registry: Optional[HostileRegistry] = None
) -> int:
    """
    Rough difficulty of an encounter: sum of (max HP + armor class) * count.

    Groups whose type does not resolve contribute nothing.
    """
    hostile_registry = hostile_registry or get_hostile_registry()
    total = 0
    for group in definition.hostiles:
        try:
            template = hostile_registry.get_template(group.type)
        except TemplateNotFoundError:
            continue
        total += template.difficulty * max(0, group.count)
    return total


class CombatantRegistry:
    """
    Owns the combatants and positions of one EncounterState.

    Args:
        state: The encounter this registry populates and updates
        grid: Grid used for placement and movement checks
        hostile_registry: Template catalog for hostile groups
        catalog: Weapon and spell catalog for character snapshots
        sink: Receiver of HP, status and slot changes
    """

    def __init__(
        self,
        state: EncounterState,
        grid: BattleGrid,
        hostile_registry: Optional[HostileRegistry] = None,
        catalog: Optional[ActionCatalog] = None,
        sink: Optional[EventSink] = None,
    ):
        self.state = state
        self.grid = grid
        self.hostile_registry = hostile_registry or get_hostile_registry()
        self.catalog = catalog or get_action_catalog()
        self.sink = sink or NullEventSink()
        self._hostile_counters: dict[str, int] = {}

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def combatant_from_snapshot(
        self, snapshot: CharacterSnapshot, combatant_id: str, kind: CombatantKind
    ) -> Combatant:
        """Normalize a character snapshot into an encounter-local Combatant."""
        spell_ids = list(snapshot.cantrips) + list(snapshot.prepared_spells)
        return Combatant(
            combatant_id=combatant_id,
            name=snapshot.name,
            kind=kind,
            team=Team.FRIENDLY,
            hp_current=snapshot.hp_current,
            hp_max=snapshot.hp_max,
            armor_class=snapshot.armor_class,
            ability_scores=dict(snapshot.ability_scores),
            level=snapshot.level,
            weapons=self.catalog.resolve_weapons(snapshot.weapons),
            spells=self.catalog.resolve_spells(spell_ids),
            spell_slots={
                level: SpellSlotPool(level=level, total=count, available=count)
                for level, count in snapshot.spell_slots.items()
            },
            spellcasting_ability=snapshot.spellcasting_ability,
        )

    def add_combatant(self, combatant: Combatant, position: Position) -> Combatant:
        """
        Add a combatant at position, or at the nearest free cell if that
        cell is taken or off the grid.

        Raises:
            ValueError: If the id is already registered or the grid is full
        """
        if combatant.combatant_id in self.state.combatants:
            raise ValueError(f"Duplicate combatant id: {combatant.combatant_id}")

        cell = self.grid.nearest_free_cell(position, self.occupied_cells())
        if cell is None:
            raise ValueError(f"No free cell left for {combatant.combatant_id}")

        self.state.combatants[combatant.combatant_id] = combatant
        self.state.positions[combatant.combatant_id] = cell
        return combatant

    def register_controlled(self, snapshot: CharacterSnapshot, position: Optional[Position] = None) -> Combatant:
        combatant = self.combatant_from_snapshot(snapshot, CONTROLLED_ACTOR_ID, CombatantKind.CONTROLLED)
        return self.add_combatant(combatant, position or self.grid.default_controlled_position())

    def register_allies(self, snapshots: Iterable[CharacterSnapshot]) -> list[Combatant]:
        allies = []
        for index, snapshot in enumerate(snapshots):
            combatant = self.combatant_from_snapshot(snapshot, ally_id(snapshot.key), CombatantKind.ALLY)
            allies.append(self.add_combatant(combatant, self.grid.default_ally_position(index)))
        return allies

    def spawn_hostiles(self, definition: EncounterDefinition) -> list[Combatant]:
        """
        Instantiate every hostile group in an encounter definition.

        Groups whose type has no template are skipped with a warning and
        recorded in state.skipped_groups.

        Raises:
            InvalidEncounterDefinition: If no group resolves
        """
        resolved: list[tuple[str, int]] = []
        for group in definition.hostiles:
            if group.count < 1:
                logger.warning(f"Hostile group '{group.type}' has count {group.count}; skipped")
                self.state.skipped_groups.append(group.type)
                continue
            try:
                self.hostile_registry.get_template(group.type)
            except TemplateNotFoundError:
                error = UnknownHostileType(group.type, group.count)
                logger.warning(str(error))
                self.state.skipped_groups.append(group.type)
                continue
            resolved.append((group.type, group.count))

        if not resolved:
            raise InvalidEncounterDefinition(
                "No hostile group in the encounter resolves to a known template",
                skipped_groups=list(self.state.skipped_groups),
            )

        total = sum(count for _, count in resolved)
        positions = definition.hostile_positions or self.grid.default_hostile_positions(total)

        hostiles = []
        for template_key, count in resolved:
            template = self.hostile_registry.get_template(template_key)
            for _ in range(count):
                index = self._hostile_counters.get(template_key, 0)
                self._hostile_counters[template_key] = index + 1
                name = f"{template.name} {index + 1}" if count > 1 else template.name
                combatant = self.hostile_registry.create_combatant(
                    template_key, hostile_id(template_key, index), name
                )
                slot = len(hostiles)
                preferred = positions[slot] if slot < len(positions) else positions[-1]
                hostiles.append(self.add_combatant(combatant, preferred))

        logger.info(f"Spawned {len(hostiles)} hostiles ({len(self.state.skipped_groups)} groups skipped)")
        return hostiles

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def get(self, combatant_id: str) -> Optional[Combatant]:
        return self.state.combatants.get(combatant_id)

    def position_of(self, combatant_id: str) -> Optional[Position]:
        return self.state.positions.get(combatant_id)

    def occupant_at(self, position: Position) -> Optional[Combatant]:
        """The living combatant standing at position, if any."""
        for combatant_id, cell in self.state.positions.items():
            if cell == position:
                combatant = self.state.combatants.get(combatant_id)
                if combatant is not None and combatant.is_alive:
                    return combatant
        return None

    def occupied_cells(self, exclude: Optional[str] = None) -> set[Position]:
        """Cells held by living combatants, optionally ignoring one of them."""
        cells = set()
        for combatant_id, cell in self.state.positions.items():
            if combatant_id == exclude:
                continue
            combatant = self.state.combatants.get(combatant_id)
            if combatant is not None and combatant.is_alive:
                cells.add(cell)
        return cells

    def living(self, team: Optional[Team] = None) -> list[Combatant]:
        return [
            c for c in self.state.combatants.values()
            if c.is_alive and (team is None or c.team == team)
        ]

    def opponents_of(self, combatant: Combatant) -> list[Combatant]:
        return [c for c in self.living() if combatant.is_opponent_of(c)]

    # =========================================================================
    # MOVEMENT
    # =========================================================================

    def validate_move(self, combatant_id: str, destination: Position) -> MovementResult:
        combatant = self.get(combatant_id)
        origin = self.position_of(combatant_id)
        if combatant is None or origin is None:
            return MovementResult(False, f"Unknown combatant {combatant_id}")
        if not combatant.is_alive:
            return MovementResult(False, f"{combatant.name} is dead", 0, origin, destination)
        return self.grid.validate_move(origin, destination, self.occupied_cells(exclude=combatant_id))

    def move(self, combatant_id: str, destination: Position) -> MovementResult:
        """Move a combatant if the move is legal; the result says whether it happened."""
        result = self.validate_move(combatant_id, destination)
        if result.success:
            self.state.positions[combatant_id] = destination
            logger.debug(f"{combatant_id} moved {result.old_position} -> {destination}")
        return result

    # =========================================================================
    # APPLYING RESOLUTION EVENTS
    # =========================================================================

    def apply_result(self, result: ResolutionResult) -> list[LogEntry]:
        """
        Apply every event in a resolution result.

        Returns:
            Death log entries for combatants that dropped to 0 HP
        """
        entries: list[LogEntry] = []
        for consumption in result.slot_consumptions:
            self.consume_slot(consumption)
        for event in result.damage_events:
            entry = self.apply_damage(event)
            if entry:
                entries.append(entry)
        for event in result.healing_events:
            self.apply_healing(event)
        for application in result.status_effects:
            self.apply_status_effect(application)
        return entries

    def apply_damage(self, event: DamageEvent) -> Optional[LogEntry]:
        """Reduce HP, clamped at 0. Returns a death entry if this kills the target."""
        target = self.get(event.target_id)
        if target is None:
            logger.warning(f"Damage for unknown combatant {event.target_id} ignored")
            return None

        was_alive = target.is_alive
        target.hp_current = max(0, target.hp_current - max(0, event.amount))
        self.sink.on_damage(event, target.hp_current)

        if was_alive and not target.is_alive:
            logger.info(f"{target.combatant_id} has fallen")
            return LogEntry(f"{target.name} has been defeated!", LogCategory.DEATH)
        return None

    def apply_healing(self, event: HealingEvent) -> None:
        """Restore HP, clamped at max. The dead are not revived."""
        target = self.get(event.target_id)
        if target is None or not target.is_alive:
            return
        target.hp_current = min(target.hp_max, target.hp_current + max(0, event.amount))
        self.sink.on_healing(event, target.hp_current)

    def apply_status_effect(self, application: StatusEffectApplication) -> None:
        target = self.get(application.target_id)
        if target is None or not target.is_alive:
            return
        # Reapplying an effect refreshes its duration
        target.status_effects = [
            e for e in target.status_effects if e.effect_type != application.effect_type
        ]
        target.status_effects.append(
            StatusEffect(
                effect_type=application.effect_type,
                duration_rounds=application.duration_rounds,
                source_id=application.source_id,
            )
        )
        self.sink.on_status_effect(application)

    def consume_slot(self, consumption: SlotConsumption) -> None:
        caster = self.get(consumption.caster_id)
        if caster is None:
            return
        pool = caster.spell_slots.get(consumption.slot_level)
        if pool is None or pool.available <= 0:
            logger.warning(
                f"{consumption.caster_id} has no level {consumption.slot_level} slot to consume"
            )
            return
        pool.available -= 1
        self.sink.on_slot_consumed(consumption, pool.available)

    def tick_status_effects(self, combatant_id: str) -> list[LogEntry]:
        """
        Count down a combatant's status effects at the end of its turn.

        Returns:
            Status entries for effects that wore off
        """
        combatant = self.get(combatant_id)
        if combatant is None:
            return []
        entries = []
        remaining = []
        for effect in combatant.status_effects:
            if effect.tick():
                entries.append(
                    LogEntry(f"{combatant.name} is no longer {effect.effect_type}", LogCategory.STATUS)
                )
            else:
                remaining.append(effect)
        combatant.status_effects = remaining
        return entries

    def sync_hp(self, combatant_id: str, hp_current: int) -> None:
        """Re-read a friendly combatant's HP from the external character store."""
        combatant = self.get(combatant_id)
        if combatant is None:
            return
        if combatant.team != Team.FRIENDLY:
            logger.warning(f"sync_hp ignored for hostile {combatant_id}")
            return
        combatant.hp_current = max(0, min(hp_current, combatant.hp_max))

    # =========================================================================
    # OUTCOME
    # =========================================================================

    def evaluate_outcome(self) -> Optional[EncounterPhase]:
        """
        Check terminal conditions.

        Returns:
            DEFEAT when the controlled actor and every ally are down,
            VICTORY when every hostile is down, otherwise None
        """
        friendlies = self.state.get_friendlies()
        if friendlies and not any(c.is_alive for c in friendlies):
            return EncounterPhase.DEFEAT
        hostiles = self.state.get_hostiles()
        if hostiles and not any(c.is_alive for c in hostiles):
            return EncounterPhase.VICTORY
        return None
