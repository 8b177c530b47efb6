"""
Shared data structures for the Grid Skirmish combat engine.

These structures are shared by every engine component; no component owns
them exclusively. The only mutable aggregate is EncounterState, and only the
encounter controller, the initiative scheduler and the combatant registry
write to it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional
import random
import re
import uuid

if TYPE_CHECKING:
    from src.combat.actions import Action


# =============================================================================
# ENUMS
# =============================================================================


class Team(str, Enum):
    """Which side of the encounter a combatant fights for."""
    FRIENDLY = "friendly"
    HOSTILE = "hostile"


class CombatantKind(str, Enum):
    """Kind of entity; also the initiative tie-break priority order."""
    CONTROLLED = "controlled"
    ALLY = "ally"
    HOSTILE = "hostile"


# Lower value wins initiative ties
KIND_PRIORITY = {
    CombatantKind.CONTROLLED: 0,
    CombatantKind.ALLY: 1,
    CombatantKind.HOSTILE: 2,
}


class EncounterPhase(str, Enum):
    """
    Phases of an encounter. Only ONE phase is active at any time.

    VICTORY and DEFEAT are terminal; only a reset (a fresh EncounterState)
    returns to INITIALIZING.
    """
    INITIALIZING = "initializing"
    INITIATIVE_DISPLAY = "initiative-display"
    PLAYER_TURN = "player-turn"
    EXECUTING_TURN = "executing-turn"
    VICTORY = "victory"
    DEFEAT = "defeat"


class LogCategory(str, Enum):
    """Categories of combat log entries handed to presentation layers."""
    COMBAT_START = "combat-start"
    INITIATIVE = "initiative"
    ATTACK_HIT = "attack-hit"
    ATTACK_MISS = "attack-miss"
    CRITICAL = "critical"
    SPELL_HIT = "spell-hit"
    DEATH = "death"
    VICTORY = "victory"
    DEFEAT = "defeat"
    HEALING = "healing"
    STATUS = "status"
    MOVEMENT = "movement"
    INFO = "info"
    ERROR = "error"


class TargetType(str, Enum):
    """Valid target sets for spells."""
    SELF = "self"
    ALLY = "ally"
    ENEMY = "enemy"
    AREA = "area"


class InteractionMode(str, Enum):
    """Mutually exclusive input modes during the controlled actor's turn."""
    NONE = "none"
    ACTION = "action"
    MOVEMENT = "movement"


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_GRID_WIDTH = 8
DEFAULT_GRID_HEIGHT = 6
DEFAULT_MOVEMENT_ALLOWANCE = 6     # Cells per turn, diagonals cost 1
DEFAULT_SPELL_RANGE = 6
MELEE_RANGE = 1
MAX_SPELL_LEVEL = 9

CONTROLLED_ACTOR_ID = "player"

# Statuses that stop a living combatant from acting on its turn
INCAPACITATING_EFFECTS = frozenset({"unconscious", "paralyzed", "stunned"})

# Armor class bonuses granted by a status while it lasts
STATUS_AC_BONUSES = {"shielded": 2}

ABILITY_NAMES = ("STR", "DEX", "CON", "INT", "WIS", "CHA")


def ability_modifier(score: int) -> int:
    """Standard d20 ability modifier: (score - 10) // 2."""
    return (score - 10) // 2


def proficiency_bonus_for_level(level: int) -> int:
    """Proficiency bonus by character level (+2 at 1-4, +3 at 5-8, ...)."""
    return 2 + (max(1, level) - 1) // 4


# =============================================================================
# DICE AND RANDOMIZATION
# =============================================================================


_DICE_PATTERN = re.compile(r"^\s*(\d*)\s*[dD]\s*(\d+)\s*([+-]\s*\d+)?\s*$")


def parse_dice_notation(notation: str) -> tuple[int, int, int]:
    """
    Parse standard dice notation into its parts.

    Args:
        notation: e.g. '1d6', '2d8+3', 'd20', '1d4-1', or a plain integer '5'

    Returns:
        Tuple of (number of dice, die size, flat modifier). A plain integer
        parses as (0, 0, value).

    Raises:
        ValueError: If the notation cannot be parsed
    """
    text = notation.strip()
    if re.fullmatch(r"[+-]?\d+", text):
        return 0, 0, int(text)

    match = _DICE_PATTERN.match(text)
    if not match:
        raise ValueError(f"Invalid dice notation: '{notation}'")

    count = int(match.group(1)) if match.group(1) else 1
    sides = int(match.group(2))
    modifier = int(match.group(3).replace(" ", "")) if match.group(3) else 0
    if sides < 1:
        raise ValueError(f"Invalid die size in '{notation}'")
    return count, sides, modifier


class DiceRoller:
    """
    Centralized randomization interface.

    Every random draw the engine makes goes through an instance of this
    class so encounters can be seeded and replayed. Each roll is recorded in
    the roller's history and in the observability RunLog.
    """

    def __init__(self, seed: Optional[int] = None, log_to_run_log: bool = True):
        """
        Initialize the roller.

        Args:
            seed: Optional seed for reproducible rolls
            log_to_run_log: Whether rolls are also recorded in the RunLog
        """
        self._seed = seed
        self._random = random.Random(seed)
        self._roll_log: list["DiceResult"] = []
        self._log_to_run_log = log_to_run_log

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    def set_seed(self, seed: int) -> None:
        """Reseed the roller for reproducibility."""
        self._seed = seed
        self._random.seed(seed)

    def _roll_die(self, sides: int) -> int:
        """Roll a single die. All dice in the engine come from here."""
        return self._random.randint(1, sides)

    def roll(self, dice: str, reason: str = "") -> "DiceResult":
        """
        Roll dice using standard notation (e.g., '2d6', '1d20+5', '3d6-2').

        Args:
            dice: Dice notation string
            reason: Why this roll is being made (for logging)

        Returns:
            DiceResult with individual rolls and total
        """
        num_dice, die_size, modifier = parse_dice_notation(dice)
        rolls = [self._roll_die(die_size) for _ in range(num_dice)]
        total = sum(rolls) + modifier

        result = DiceResult(
            notation=dice,
            rolls=rolls,
            modifier=modifier,
            total=total,
            reason=reason,
        )
        self._record(result)
        return result

    def roll_d20(self, reason: str = "") -> "DiceResult":
        """Convenience method for d20 rolls."""
        return self.roll("1d20", reason)

    def randint(self, a: int, b: int, reason: str = "") -> int:
        """Return a random integer in [a, b] and record it."""
        value = self._random.randint(a, b)
        self._record(DiceResult(
            notation=f"range({a}-{b})",
            rolls=[value],
            modifier=0,
            total=value,
            reason=reason,
        ))
        return value

    def _record(self, result: "DiceResult") -> None:
        self._roll_log.append(result)
        if not self._log_to_run_log:
            return
        from src.observability.run_log import get_run_log

        get_run_log().log_roll(
            notation=result.notation,
            rolls=list(result.rolls),
            modifier=result.modifier,
            total=result.total,
            reason=result.reason,
        )

    def get_roll_log(self) -> list["DiceResult"]:
        """Get every roll made by this roller."""
        return self._roll_log.copy()

    def clear_roll_log(self) -> None:
        """Clear the roll history."""
        self._roll_log = []


@dataclass
class DiceResult:
    """Result of a dice roll with full information."""
    notation: str
    rolls: list[int]
    modifier: int
    total: int
    reason: str
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def natural(self) -> int:
        """Sum of the dice alone, without the flat modifier."""
        return sum(self.rolls)

    def __str__(self) -> str:
        if self.modifier > 0:
            return f"{self.notation}: {self.rolls} + {self.modifier} = {self.total}"
        elif self.modifier < 0:
            return f"{self.notation}: {self.rolls} - {abs(self.modifier)} = {self.total}"
        return f"{self.notation}: {self.rolls} = {self.total}"


# =============================================================================
# GRID POSITIONS
# =============================================================================


@dataclass(frozen=True)
class Position:
    """An integer cell on the battle grid."""
    x: int
    y: int

    @classmethod
    def from_value(cls, value: Any) -> "Position":
        """Build a Position from a Position, (x, y) pair or {'x':, 'y':} dict."""
        if isinstance(value, Position):
            return value
        if isinstance(value, dict):
            return cls(int(value["x"]), int(value["y"]))
        x, y = value
        return cls(int(x), int(y))

    def as_tuple(self) -> tuple[int, int]:
        return (self.x, self.y)

    def __str__(self) -> str:
        return f"({self.x}, {self.y})"


# =============================================================================
# ACTION DEFINITIONS (static content)
# =============================================================================


@dataclass(frozen=True)
class DamageSpec:
    """
    Damage (or healing) formula: dice notation plus a flat bonus, or a fixed
    amount.
    """
    dice: Optional[str] = None
    bonus: int = 0
    fixed: Optional[int] = None
    damage_type: str = ""

    @classmethod
    def parse(cls, notation: str, damage_type: str = "") -> "DamageSpec":
        """Build a spec from notation such as '1d6+2' or '4'."""
        num_dice, die_size, modifier = parse_dice_notation(notation)
        if num_dice == 0:
            return cls(fixed=modifier, damage_type=damage_type)
        return cls(dice=f"{num_dice}d{die_size}", bonus=modifier, damage_type=damage_type)

    @classmethod
    def from_value(cls, value: Any) -> Optional["DamageSpec"]:
        """Accept a spec, notation string, int or {'dice':, 'bonus':} dict."""
        if value is None or isinstance(value, DamageSpec):
            return value
        if isinstance(value, int):
            return cls(fixed=value)
        if isinstance(value, str):
            return cls.parse(value)
        if "fixed" in value:
            return cls(fixed=int(value["fixed"]), damage_type=value.get("type", ""))
        base = cls.parse(value["dice"], value.get("type", ""))
        return cls(
            dice=base.dice,
            bonus=base.bonus + int(value.get("bonus", 0)),
            fixed=base.fixed,
            damage_type=base.damage_type,
        )

    def with_bonus(self, extra: int) -> "DamageSpec":
        """Return a copy with an additional flat bonus."""
        if self.fixed is not None:
            return self
        return DamageSpec(self.dice, self.bonus + extra, None, self.damage_type)

    def describe(self) -> str:
        if self.fixed is not None:
            return str(self.fixed)
        if self.bonus > 0:
            return f"{self.dice}+{self.bonus}"
        if self.bonus < 0:
            return f"{self.dice}-{abs(self.bonus)}"
        return str(self.dice)


@dataclass(frozen=True)
class WeaponDefinition:
    """A weapon or natural attack as defined in static content."""
    weapon_id: str
    name: str
    damage: DamageSpec
    range: int = MELEE_RANGE
    ability: str = "STR"
    finesse: bool = False
    attack_bonus: Optional[int] = None  # Fixed bonus, used by monster attacks


@dataclass(frozen=True)
class SpellDefinition:
    """A spell as defined in static content. Level 0 is a cantrip."""
    spell_id: str
    name: str
    level: int = 0
    damage: Optional[DamageSpec] = None
    healing: Optional[DamageSpec] = None
    range: int = DEFAULT_SPELL_RANGE
    projectiles: int = 1
    requires_attack_roll: bool = False
    area_of_effect: bool = False
    area_radius: int = 0
    valid_targets: TargetType = TargetType.ENEMY
    status_effect: Optional[str] = None
    status_duration: int = 0
    description: str = ""


# =============================================================================
# COMBATANTS
# =============================================================================


@dataclass
class StatusEffect:
    """A status effect carried by a combatant."""
    effect_type: str
    duration_rounds: Optional[int] = None  # None = lasts until the encounter ends
    source_id: str = ""

    def tick(self) -> bool:
        """
        Reduce duration by one round.

        Returns:
            True if the effect has expired, False otherwise
        """
        if self.duration_rounds is not None:
            self.duration_rounds -= 1
            return self.duration_rounds <= 0
        return False


@dataclass
class SpellSlotPool:
    """Spell slots of a single level."""
    level: int
    total: int
    available: int

    def __post_init__(self):
        self.available = max(0, min(self.available, self.total))


@dataclass
class Combatant:
    """
    A participant in an encounter: controlled actor, ally or hostile.

    Invariant: 0 <= hp_current <= hp_max. A combatant at 0 HP is dead; it
    stays in the turn order but is skipped, cannot be targeted and cannot
    move.
    """
    combatant_id: str
    name: str
    kind: CombatantKind
    team: Team
    hp_current: int
    hp_max: int
    armor_class: int = 10
    ability_scores: dict[str, int] = field(default_factory=dict)
    level: int = 1
    initiative: int = 0
    status_effects: list[StatusEffect] = field(default_factory=list)
    weapons: list[WeaponDefinition] = field(default_factory=list)
    spells: list[SpellDefinition] = field(default_factory=list)
    spell_slots: dict[int, SpellSlotPool] = field(default_factory=dict)
    spellcasting_ability: Optional[str] = None
    template_key: Optional[str] = None  # Hostile template this was spawned from
    xp_value: int = 0

    def __post_init__(self):
        if self.hp_max < 1:
            raise ValueError(f"{self.combatant_id}: hp_max must be positive")
        self.hp_current = max(0, min(self.hp_current, self.hp_max))

    @property
    def is_alive(self) -> bool:
        return self.hp_current > 0

    @property
    def is_friendly(self) -> bool:
        return self.team == Team.FRIENDLY

    @property
    def can_act(self) -> bool:
        """Alive and not carrying an incapacitating status."""
        if not self.is_alive:
            return False
        return not any(e.effect_type in INCAPACITATING_EFFECTS for e in self.status_effects)

    @property
    def effective_armor_class(self) -> int:
        """Armor class including any bonus from active statuses."""
        return self.armor_class + sum(STATUS_AC_BONUSES.get(e.effect_type, 0) for e in self.status_effects)

    @property
    def can_cast_spells(self) -> bool:
        return bool(self.spells) and self.spellcasting_ability is not None

    @property
    def proficiency_bonus(self) -> int:
        return proficiency_bonus_for_level(self.level)

    @property
    def initiative_modifier(self) -> int:
        """Initiative modifier, derived from agility (DEX)."""
        return self.ability_modifier("DEX")

    @property
    def spell_attack_bonus(self) -> int:
        if not self.spellcasting_ability:
            return self.proficiency_bonus
        return self.ability_modifier(self.spellcasting_ability) + self.proficiency_bonus

    def ability_modifier(self, ability: str) -> int:
        return ability_modifier(self.ability_scores.get(ability, 10))

    def has_status(self, effect_type: str) -> bool:
        return any(e.effect_type == effect_type for e in self.status_effects)

    def is_opponent_of(self, other: "Combatant") -> bool:
        return self.team != other.team

    def lowest_available_slot(self, spell_level: int) -> Optional[int]:
        """
        Find the lowest slot level at or above spell_level with a slot left.

        Cantrips need no slot and return 0.
        """
        if spell_level == 0:
            return 0
        for level in range(spell_level, MAX_SPELL_LEVEL + 1):
            pool = self.spell_slots.get(level)
            if pool and pool.available > 0:
                return level
        return None


@dataclass
class CharacterSnapshot:
    """
    Read-only snapshot of a controlled actor or ally supplied by the
    character progression layer at encounter start.
    """
    key: str
    name: str
    level: int
    ability_scores: dict[str, int]
    hp_current: int
    hp_max: int
    armor_class: int = 10
    weapons: list[str] = field(default_factory=list)
    cantrips: list[str] = field(default_factory=list)
    prepared_spells: list[str] = field(default_factory=list)
    spell_slots: dict[int, int] = field(default_factory=dict)  # level -> available
    spellcasting_ability: Optional[str] = None


# =============================================================================
# ENCOUNTER DEFINITION (input)
# =============================================================================


@dataclass
class HostileGroup:
    """A group of identical hostiles in an encounter definition."""
    type: str
    count: int = 1


@dataclass
class EncounterDefinition:
    """Which hostiles to spawn and where to place combatants."""
    hostiles: list[HostileGroup] = field(default_factory=list)
    hostile_positions: Optional[list[Position]] = None
    controlled_start_position: Optional[Position] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EncounterDefinition":
        """
        Build a definition from a plain dictionary.

        Accepts both snake_case keys and the camelCase keys used by scene
        data ('enemies', 'enemyPositions', 'hostilePositions',
        'controlledStartPosition').
        """
        raw_groups = data.get("hostiles", data.get("enemies", [])) or []
        groups = [
            HostileGroup(type=str(g["type"]), count=int(g.get("count", 1)))
            for g in raw_groups
        ]

        raw_positions = (
            data.get("hostile_positions")
            or data.get("hostilePositions")
            or data.get("enemyPositions")
        )
        positions = [Position.from_value(p) for p in raw_positions] if raw_positions else None

        raw_start = data.get("controlled_start_position") or data.get("controlledStartPosition")
        start = Position.from_value(raw_start) if raw_start else None

        return cls(hostiles=groups, hostile_positions=positions, controlled_start_position=start)


# =============================================================================
# TURN ORDER
# =============================================================================


@dataclass(frozen=True)
class TurnEntry:
    """One slot in the turn order with its resolved initiative."""
    combatant_id: str
    name: str
    kind: CombatantKind
    roll: int
    modifier: int

    @property
    def initiative(self) -> int:
        return self.roll + self.modifier


# Immutable once computed; dead entries are skipped, never removed
TurnOrder = tuple[TurnEntry, ...]


# =============================================================================
# LOGGING OUTPUT
# =============================================================================


@dataclass(frozen=True)
class LogEntry:
    """A human-readable combat log line with its category."""
    text: str
    category: LogCategory

    def __str__(self) -> str:
        return self.text


@dataclass
class TransitionLog:
    """Log entry for a phase transition."""
    timestamp: datetime
    from_state: str
    to_state: str
    trigger: str
    context: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# ENCOUNTER STATE
# =============================================================================


@dataclass
class PlayerTurnState:
    """Action economy and pending selection for the controlled actor's turn."""
    action_used: bool = False
    movement_used: bool = False
    mode: InteractionMode = InteractionMode.NONE
    pending_action: Optional["Action"] = None
    pending_targets: list[str] = field(default_factory=list)
    pending_origin: Optional[Position] = None  # Area actions target a cell
    required_targets: int = 0

    def clear_selection(self) -> None:
        """Drop any in-progress action selection."""
        self.pending_action = None
        self.pending_targets = []
        self.pending_origin = None
        self.required_targets = 0
        if self.mode == InteractionMode.ACTION:
            self.mode = InteractionMode.NONE

    def reset(self) -> None:
        """Start of a new turn for the controlled actor."""
        self.action_used = False
        self.movement_used = False
        self.mode = InteractionMode.NONE
        self.clear_selection()


@dataclass
class EncounterState:
    """
    The authoritative mutable aggregate for one encounter.

    Created at encounter start and discarded on reset; an encounter never
    resumes from saved state.
    """
    encounter_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    phase: EncounterPhase = EncounterPhase.INITIALIZING
    turn_order: TurnOrder = ()
    current_turn_index: int = 0
    round_counter: int = 1
    combatants: dict[str, Combatant] = field(default_factory=dict)
    positions: dict[str, Position] = field(default_factory=dict)
    player_turn: PlayerTurnState = field(default_factory=PlayerTurnState)
    log: list[LogEntry] = field(default_factory=list)
    skipped_groups: list[str] = field(default_factory=list)
    generation: int = 0
    definition: Optional[EncounterDefinition] = None

    def get_hostiles(self) -> list[Combatant]:
        return [c for c in self.combatants.values() if c.team == Team.HOSTILE]

    def get_friendlies(self) -> list[Combatant]:
        return [c for c in self.combatants.values() if c.team == Team.FRIENDLY]

    def get_active_hostiles(self) -> list[Combatant]:
        """Get hostiles still in the fight."""
        return [c for c in self.get_hostiles() if c.is_alive]

    def get_controlled(self) -> Optional[Combatant]:
        return self.combatants.get(CONTROLLED_ACTOR_ID)

    @property
    def is_over(self) -> bool:
        return self.phase in (EncounterPhase.VICTORY, EncounterPhase.DEFEAT)


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class CombatConfig:
    """Tunable settings for an encounter."""
    grid_width: int = DEFAULT_GRID_WIDTH
    grid_height: int = DEFAULT_GRID_HEIGHT
    movement_allowance: int = DEFAULT_MOVEMENT_ALLOWANCE
    autonomous_turn_delay: float = 0.5    # Pause before an autonomous action resolves
    target_resolution_delay: float = 0.3  # Pause between last target and resolution
    auto_end_turn: bool = False
    seed: Optional[int] = None

    def __post_init__(self):
        if self.grid_width < 1 or self.grid_height < 1:
            raise ValueError("Grid dimensions must be positive")
        if self.movement_allowance < 0:
            raise ValueError("movement_allowance cannot be negative")
        if self.autonomous_turn_delay < 0 or self.target_resolution_delay < 0:
            raise ValueError("Delays cannot be negative")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CombatConfig":
        """Create a config from a dictionary, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)
