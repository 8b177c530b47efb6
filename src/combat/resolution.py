"""
Action Resolution Engine for Grid Skirmish.

Resolves attacks and spells against targets: targeting legality, attack
rolls, damage, criticals, healing, area effects and spell slots.

Resolution is pure with respect to encounter state. The engine reads
combatants and positions but never writes them; every outcome is returned
as a ResolutionResult of events that the CombatantRegistry applies. The
only side effect is drawing dice from the injected DiceRoller.

Attack rules:
- Roll 1d20 + attack bonus against the target's armor class
- A natural 20 always hits and is a critical
- Any other total >= armor class hits; anything lower misses
- Critical hits double the total rolled damage (dice + bonus)
- Actions that do not require an attack roll hit automatically
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Union
import logging

from src.combat.actions import Action, ActionKind, SpellAction
from src.combat.errors import NoLegalTarget
from src.combat.event_sink import (
    DamageEvent,
    HealingEvent,
    SlotConsumption,
    StatusEffectApplication,
)
from src.data_models import (
    Combatant,
    DamageSpec,
    DiceRoller,
    EncounterState,
    LogCategory,
    LogEntry,
    Position,
    TargetType,
)
from src.grid.battle_grid import BattleGrid

logger = logging.getLogger(__name__)


class ResolutionOutcome(str, Enum):
    """Overall outcome of one resolution."""
    RESOLVED = "resolved"
    NO_SLOT_AVAILABLE = "no_slot_available"


@dataclass
class AttackRollDetail:
    """One attack roll against one target."""
    target_id: str
    natural: int
    bonus: int
    total: int
    armor_class: int
    hit: bool
    critical: bool = False


@dataclass
class ResolutionResult:
    """
    Everything one resolved action produced.

    This record is the only channel through which the engine reports
    outcomes; HP is changed only when the registry applies these events.
    """
    actor_id: str
    action_id: str
    outcome: ResolutionOutcome = ResolutionOutcome.RESOLVED
    target_ids: list[str] = field(default_factory=list)
    damage_events: list[DamageEvent] = field(default_factory=list)
    healing_events: list[HealingEvent] = field(default_factory=list)
    status_effects: list[StatusEffectApplication] = field(default_factory=list)
    slot_consumptions: list[SlotConsumption] = field(default_factory=list)
    attack_rolls: list[AttackRollDetail] = field(default_factory=list)
    log_entries: list[LogEntry] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome == ResolutionOutcome.RESOLVED

    @property
    def total_damage(self) -> int:
        return sum(e.amount for e in self.damage_events)

    @property
    def total_healing(self) -> int:
        return sum(e.amount for e in self.healing_events)

    def add_log(self, text: str, category: LogCategory) -> None:
        self.log_entries.append(LogEntry(text=text, category=category))


TargetSelection = Union[Sequence[str], Position, None]


class ActionResolutionEngine:
    """
    Stateless resolver for combat actions.

    Usage:
        engine = ActionResolutionEngine(dice, grid)
        targets = engine.legal_targets(actor, action, state)
        result = engine.resolve(actor, action, state, [targets[0].combatant_id])
    """

    def __init__(self, dice: DiceRoller, grid: BattleGrid):
        self.dice = dice
        self.grid = grid

    # =========================================================================
    # TARGETING
    # =========================================================================

    def _in_range(self, actor: Combatant, cell: Optional[Position], action: Action, state: EncounterState) -> bool:
        origin = state.positions.get(actor.combatant_id)
        if origin is None or cell is None:
            return False
        return self.grid.distance(origin, cell) <= action.range

    def is_legal_target(
        self, actor: Combatant, action: Action, target: Combatant, state: EncounterState
    ) -> bool:
        """
        Check whether target is a legal individual target for action.

        Attacks and enemy-targeted spells need a living opponent; ally spells
        a living member of the actor's own team; self spells the actor. The
        target must also be within range.
        """
        if not target.is_alive:
            return False

        valid = action.valid_targets
        if valid == TargetType.SELF:
            return target.combatant_id == actor.combatant_id
        if valid == TargetType.ALLY:
            if target.team != actor.team:
                return False
        elif valid == TargetType.ENEMY:
            if not actor.is_opponent_of(target):
                return False
        else:
            # Area actions target a cell, not a combatant
            return False

        return self._in_range(actor, state.positions.get(target.combatant_id), action, state)

    def legal_targets(self, actor: Combatant, action: Action, state: EncounterState) -> list[Combatant]:
        """Every legal individual target for action, in registry order."""
        return [
            c for c in state.combatants.values()
            if self.is_legal_target(actor, action, c, state)
        ]

    def is_legal_origin(self, actor: Combatant, action: Action, origin: Position, state: EncounterState) -> bool:
        """Check whether an area action may be centred on origin."""
        return self.grid.contains(origin) and self._in_range(actor, origin, action, state)

    def area_targets(
        self, actor: Combatant, action: Action, origin: Position, state: EncounterState
    ) -> list[Combatant]:
        """
        Living opponents of the actor standing inside the footprint of an
        area action centred on origin.
        """
        radius = action.area_radius if isinstance(action, SpellAction) else 0
        footprint = set(self.grid.cells_within(origin, radius))
        affected = []
        for combatant in state.combatants.values():
            if not combatant.is_alive or not actor.is_opponent_of(combatant):
                continue
            if state.positions.get(combatant.combatant_id) in footprint:
                affected.append(combatant)
        return affected

    # =========================================================================
    # DICE
    # =========================================================================

    def roll_attack(self, actor: Combatant, target: Combatant, attack_bonus: int) -> AttackRollDetail:
        """Roll 1d20 + attack_bonus against the target's effective armor class."""
        roll = self.dice.roll_d20(f"{actor.name} attacks {target.name}")
        natural = roll.natural
        total = natural + attack_bonus
        critical = natural == 20
        armor_class = target.effective_armor_class
        hit = critical or total >= armor_class
        return AttackRollDetail(
            target_id=target.combatant_id,
            natural=natural,
            bonus=attack_bonus,
            total=total,
            armor_class=armor_class,
            hit=hit,
            critical=critical,
        )

    def roll_damage(self, spec: DamageSpec, critical: bool = False, reason: str = "damage") -> int:
        """
        Roll a damage or healing formula.

        Critical hits double the whole rolled total, bonus included.
        """
        if spec.fixed is not None:
            amount = spec.fixed
        else:
            amount = self.dice.roll(spec.dice, reason).total + spec.bonus
        if critical:
            amount *= 2
        return max(0, amount)

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def resolve(
        self,
        actor: Combatant,
        action: Action,
        state: EncounterState,
        targets: TargetSelection = None,
    ) -> ResolutionResult:
        """
        Resolve an action.

        Args:
            actor: The acting combatant
            action: The action being taken
            state: Read-only view of the encounter
            targets: Target ids for single-target actions, an origin cell
                for area actions, ignored for self-targeted spells

        Returns:
            ResolutionResult with every event the action produced

        Raises:
            NoLegalTarget: If a target or origin is not legal for the action
        """
        result = ResolutionResult(actor_id=actor.combatant_id, action_id=action.action_id)

        slot_level = 0
        if action.kind == ActionKind.SPELL:
            slot = actor.lowest_available_slot(action.level)
            if slot is None:
                result.outcome = ResolutionOutcome.NO_SLOT_AVAILABLE
                result.add_log(
                    f"{actor.name} has no spell slot left for {action.name}",
                    LogCategory.ERROR,
                )
                logger.debug(f"{actor.combatant_id} cannot cast {action.action_id}: no slot")
                return result
            slot_level = slot

        affected = self._collect_targets(actor, action, state, targets)
        result.target_ids = [t.combatant_id for t in affected]

        if slot_level > 0:
            result.slot_consumptions.append(
                SlotConsumption(caster_id=actor.combatant_id, slot_level=slot_level, spell_id=action.spell_id)
            )

        if action.kind == ActionKind.ATTACK:
            for target in affected:
                self._resolve_weapon_hit(actor, action, target, result)
        else:
            if action.area_of_effect and not affected:
                result.add_log(f"{actor.name}'s {action.name} catches no one", LogCategory.INFO)
            for target in affected:
                self._resolve_spell_effect(actor, action, target, result)

        logger.debug(
            f"Resolved {action.action_id} by {actor.combatant_id}: "
            f"{result.total_damage} damage, {result.total_healing} healing"
        )
        return result

    def _collect_targets(
        self,
        actor: Combatant,
        action: Action,
        state: EncounterState,
        targets: TargetSelection,
    ) -> list[Combatant]:
        """Validate the selection and turn it into the list of affected combatants."""
        if action.area_of_effect:
            if not isinstance(targets, Position):
                raise NoLegalTarget(f"{action.name} needs an origin cell")
            if not self.is_legal_origin(actor, action, targets, state):
                raise NoLegalTarget(f"{targets} is out of range for {action.name}")
            return self.area_targets(actor, action, targets, state)

        if action.valid_targets == TargetType.SELF:
            return [actor]

        if targets is None or isinstance(targets, Position):
            raise NoLegalTarget(f"{action.name} needs at least one target")

        target_ids = list(targets)
        if not target_ids:
            raise NoLegalTarget(f"{action.name} needs at least one target")
        if len(set(target_ids)) != len(target_ids):
            raise NoLegalTarget(f"{action.name} cannot target the same combatant twice")
        if len(target_ids) > action.projectiles:
            raise NoLegalTarget(f"{action.name} allows at most {action.projectiles} targets")

        affected = []
        for target_id in target_ids:
            target = state.combatants.get(target_id)
            if target is None or not self.is_legal_target(actor, action, target, state):
                raise NoLegalTarget(f"{target_id} is not a legal target for {action.name}")
            affected.append(target)
        return affected

    def _resolve_weapon_hit(
        self, actor: Combatant, action: Action, target: Combatant, result: ResolutionResult
    ) -> None:
        if not action.requires_attack_roll:
            amount = self.roll_damage(action.damage, reason=f"{action.name} damage")
            result.damage_events.append(DamageEvent(target.combatant_id, amount, actor.combatant_id))
            result.add_log(f"{actor.name} hits {target.name} for {amount} damage", LogCategory.ATTACK_HIT)
            return

        roll = self.roll_attack(actor, target, action.attack_bonus)
        result.attack_rolls.append(roll)
        if not roll.hit:
            result.add_log(
                f"{actor.name} misses {target.name} ({roll.total} vs AC {roll.armor_class})",
                LogCategory.ATTACK_MISS,
            )
            return

        amount = self.roll_damage(action.damage, roll.critical, f"{action.name} damage")
        result.damage_events.append(
            DamageEvent(
                target_id=target.combatant_id,
                amount=amount,
                source_id=actor.combatant_id,
                damage_type=action.damage.damage_type,
                critical=roll.critical,
            )
        )
        if roll.critical:
            result.add_log(
                f"Critical hit! {actor.name} deals {amount} damage to {target.name}!",
                LogCategory.CRITICAL,
            )
        else:
            result.add_log(
                f"{actor.name} hits {target.name} with {action.name} for {amount} damage",
                LogCategory.ATTACK_HIT,
            )

    def _resolve_spell_effect(
        self, actor: Combatant, action: SpellAction, target: Combatant, result: ResolutionResult
    ) -> None:
        critical = False
        if action.requires_attack_roll:
            roll = self.roll_attack(actor, target, action.attack_bonus)
            result.attack_rolls.append(roll)
            if not roll.hit:
                result.add_log(
                    f"{actor.name} misses {target.name} with {action.name}",
                    LogCategory.ATTACK_MISS,
                )
                return
            critical = roll.critical

        if action.damage is not None:
            amount = self.roll_damage(action.damage, critical, f"{action.name} damage")
            result.damage_events.append(
                DamageEvent(
                    target_id=target.combatant_id,
                    amount=amount,
                    source_id=actor.combatant_id,
                    damage_type=action.damage.damage_type,
                    critical=critical,
                )
            )
            if critical:
                result.add_log(
                    f"Critical hit! {actor.name}'s {action.name} deals {amount} damage to {target.name}!",
                    LogCategory.CRITICAL,
                )
            else:
                result.add_log(
                    f"{actor.name} deals {amount} damage to {target.name} with {action.name}",
                    LogCategory.SPELL_HIT,
                )

        if action.healing is not None:
            amount = self.roll_damage(action.healing, reason=f"{action.name} healing")
            result.healing_events.append(HealingEvent(target.combatant_id, amount, actor.combatant_id))
            result.add_log(
                f"{actor.name}'s {action.name} restores {amount} HP to {target.name}",
                LogCategory.HEALING,
            )

        if action.status_effect:
            duration = action.status_duration if action.status_duration > 0 else None
            result.status_effects.append(
                StatusEffectApplication(
                    target_id=target.combatant_id,
                    effect_type=action.status_effect,
                    duration_rounds=duration,
                    source_id=actor.combatant_id,
                )
            )
            result.add_log(
                f"{target.name} is {action.status_effect} by {action.name}",
                LogCategory.STATUS,
            )
