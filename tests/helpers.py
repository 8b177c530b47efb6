"""
Test helpers for the Grid Skirmish test suite.

Provides:
- ScriptedDice, a DiceRoller whose dice come from a fixed script
- FakeClock for driving the PacingScheduler without real sleeps
- Builders for combatants, snapshots and hand-placed encounter states
"""

from typing import Iterable, Optional

from src.data_models import (
    CharacterSnapshot,
    Combatant,
    CombatantKind,
    DiceRoller,
    EncounterState,
    Position,
    SpellDefinition,
    SpellSlotPool,
    Team,
    WeaponDefinition,
)


# =============================================================================
# DICE
# =============================================================================


class ScriptedDice(DiceRoller):
    """
    DiceRoller that returns scripted die faces in order.

    Once the script runs out, dice fall back to the seeded generator so a
    test only needs to script the rolls it asserts on.

    Usage:
        dice = ScriptedDice([15, 4])   # d20 shows 15, then damage die shows 4
    """

    def __init__(self, faces: Iterable[int] = (), seed: int = 0):
        super().__init__(seed=seed)
        self.faces = list(faces)
        self.rolled: list[tuple[int, int]] = []

    def push(self, *faces: int) -> None:
        self.faces.extend(faces)

    def _roll_die(self, sides: int) -> int:
        if self.faces:
            face = self.faces.pop(0)
        else:
            face = super()._roll_die(sides)
        self.rolled.append((sides, face))
        return face


# =============================================================================
# CLOCK
# =============================================================================


class FakeClock:
    """Manual clock; sleep() advances time instantly."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# =============================================================================
# BUILDERS
# =============================================================================


def make_weapon(
    weapon_id: str = "test_blade",
    damage: str = "1d6+2",
    range: int = 1,
    attack_bonus: Optional[int] = None,
) -> WeaponDefinition:
    from src.content_loader.action_catalog import parse_weapon

    return parse_weapon(
        {
            "weapon_id": weapon_id,
            "name": weapon_id.replace("_", " ").title(),
            "damage": damage,
            "range": range,
            "attack_bonus": attack_bonus,
        }
    )


def make_combatant(
    combatant_id: str,
    team: Team = Team.HOSTILE,
    kind: Optional[CombatantKind] = None,
    hp: int = 10,
    hp_max: Optional[int] = None,
    armor_class: int = 12,
    weapons: Optional[list[WeaponDefinition]] = None,
    spells: Optional[list[SpellDefinition]] = None,
    spell_slots: Optional[dict[int, int]] = None,
    ability_scores: Optional[dict[str, int]] = None,
    level: int = 1,
    name: Optional[str] = None,
) -> Combatant:
    if kind is None:
        kind = CombatantKind.HOSTILE if team == Team.HOSTILE else CombatantKind.ALLY
    return Combatant(
        combatant_id=combatant_id,
        name=name or combatant_id,
        kind=kind,
        team=team,
        hp_current=hp,
        hp_max=hp_max if hp_max is not None else max(hp, 1),
        armor_class=armor_class,
        ability_scores=ability_scores or {},
        level=level,
        weapons=weapons if weapons is not None else [make_weapon()],
        spells=spells or [],
        spell_slots={
            lvl: SpellSlotPool(level=lvl, total=count, available=count)
            for lvl, count in (spell_slots or {}).items()
        },
        spellcasting_ability="INT" if spells else None,
    )


def make_player(**kwargs) -> Combatant:
    kwargs.setdefault("kind", CombatantKind.CONTROLLED)
    kwargs.setdefault("name", "Hero")
    return make_combatant("player", team=Team.FRIENDLY, **kwargs)


def build_state(*placements: tuple[Combatant, tuple[int, int]]) -> EncounterState:
    """An EncounterState holding the given combatants at the given cells."""
    state = EncounterState()
    for combatant, cell in placements:
        state.combatants[combatant.combatant_id] = combatant
        state.positions[combatant.combatant_id] = Position(*cell)
    return state


def make_snapshot(
    key: str = "hero",
    name: str = "Hero",
    hp: int = 20,
    weapons: Optional[list[str]] = None,
    cantrips: Optional[list[str]] = None,
    prepared_spells: Optional[list[str]] = None,
    spell_slots: Optional[dict[int, int]] = None,
    spellcasting_ability: Optional[str] = None,
    ability_scores: Optional[dict[str, int]] = None,
    armor_class: int = 14,
    level: int = 1,
) -> CharacterSnapshot:
    return CharacterSnapshot(
        key=key,
        name=name,
        level=level,
        ability_scores=ability_scores or {"STR": 16, "DEX": 14, "CON": 12, "INT": 10, "WIS": 10, "CHA": 10},
        hp_current=hp,
        hp_max=hp,
        armor_class=armor_class,
        weapons=weapons if weapons is not None else ["longsword", "shortbow"],
        cantrips=cantrips or [],
        prepared_spells=prepared_spells or [],
        spell_slots=spell_slots or {},
        spellcasting_ability=spellcasting_ability,
    )
