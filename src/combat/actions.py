"""
Combat actions for Grid Skirmish.

An Action is a closed tagged union of AttackAction and SpellAction, told
apart by the `kind` discriminant. Actions are derived per combatant at
selection time from static weapon and spell definitions, folding in the
combatant's own attack and damage bonuses. They are never stored as
encounter state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from src.data_models import (
    MELEE_RANGE,
    Combatant,
    DamageSpec,
    SpellDefinition,
    TargetType,
    WeaponDefinition,
)


class ActionKind(str, Enum):
    """Discriminant for the Action union."""
    ATTACK = "attack"
    SPELL = "spell"


@dataclass(frozen=True)
class AttackAction:
    """A melee or ranged weapon attack."""
    action_id: str
    name: str
    damage: DamageSpec
    attack_bonus: int
    range: int = MELEE_RANGE
    projectiles: int = 1
    requires_attack_roll: bool = True
    area_of_effect: bool = False
    weapon_id: str = ""
    kind: ActionKind = field(default=ActionKind.ATTACK, init=False)

    @property
    def valid_targets(self) -> TargetType:
        return TargetType.ENEMY


@dataclass(frozen=True)
class SpellAction:
    """A spell as cast by one particular caster."""
    action_id: str
    name: str
    spell_id: str
    level: int = 0
    damage: Optional[DamageSpec] = None
    healing: Optional[DamageSpec] = None
    attack_bonus: int = 0
    range: int = 6
    projectiles: int = 1
    requires_attack_roll: bool = False
    area_of_effect: bool = False
    area_radius: int = 0
    valid_targets: TargetType = TargetType.ENEMY
    status_effect: Optional[str] = None
    status_duration: int = 0
    kind: ActionKind = field(default=ActionKind.SPELL, init=False)

    @property
    def is_offensive(self) -> bool:
        return self.valid_targets in (TargetType.ENEMY, TargetType.AREA) and (
            self.damage is not None or self.status_effect is not None
        )


Action = Union[AttackAction, SpellAction]


# =============================================================================
# BUILDERS
# =============================================================================


def weapon_ability_modifier(combatant: Combatant, weapon: WeaponDefinition) -> int:
    """Ability modifier a combatant applies with a weapon; finesse takes the better of STR and DEX."""
    if weapon.finesse:
        return max(combatant.ability_modifier("STR"), combatant.ability_modifier("DEX"))
    return combatant.ability_modifier(weapon.ability)


def build_attack_action(combatant: Combatant, weapon: WeaponDefinition) -> AttackAction:
    """
    Build the attack a combatant makes with a weapon.

    Weapons with a fixed attack_bonus (monster attacks) already include
    every bonus in their stats. Otherwise the attack bonus is the ability
    modifier plus proficiency, and the damage adds the ability modifier.
    """
    if weapon.attack_bonus is not None:
        attack_bonus = weapon.attack_bonus
        damage = weapon.damage
    else:
        modifier = weapon_ability_modifier(combatant, weapon)
        attack_bonus = modifier + combatant.proficiency_bonus
        damage = weapon.damage.with_bonus(modifier)

    return AttackAction(
        action_id=f"attack:{weapon.weapon_id}",
        name=weapon.name,
        damage=damage,
        attack_bonus=attack_bonus,
        range=weapon.range,
        weapon_id=weapon.weapon_id,
    )


def build_spell_action(combatant: Combatant, spell: SpellDefinition) -> SpellAction:
    """Build the action for a caster's spell, using the caster's spell attack bonus."""
    return SpellAction(
        action_id=f"spell:{spell.spell_id}",
        name=spell.name,
        spell_id=spell.spell_id,
        level=spell.level,
        damage=spell.damage,
        healing=spell.healing,
        attack_bonus=combatant.spell_attack_bonus,
        range=spell.range,
        projectiles=spell.projectiles,
        requires_attack_roll=spell.requires_attack_roll,
        area_of_effect=spell.area_of_effect,
        area_radius=spell.area_radius,
        valid_targets=spell.valid_targets,
        status_effect=spell.status_effect,
        status_duration=spell.status_duration,
    )


def build_actions(combatant: Combatant) -> list[Action]:
    """All actions a combatant can take: weapons first, then spells."""
    actions: list[Action] = [build_attack_action(combatant, w) for w in combatant.weapons]
    if combatant.can_cast_spells:
        actions.extend(build_spell_action(combatant, s) for s in combatant.spells)
    return actions


def find_action(combatant: Combatant, action_id: str) -> Optional[Action]:
    for action in build_actions(combatant):
        if action.action_id == action_id:
            return action
    return None
