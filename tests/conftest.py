"""
Pytest fixtures for the Grid Skirmish test suite.

Provides reusable fixtures for dice, grids, combatants, encounter states
and fully wired encounter controllers.
"""

import pytest

from src.combat.combatant_registry import CombatantRegistry
from src.combat.encounter_controller import EncounterController
from src.combat.event_sink import RecordingEventSink
from src.combat.resolution import ActionResolutionEngine
from src.content_loader.action_catalog import get_action_catalog, reset_action_catalog
from src.content_loader.hostile_registry import get_hostile_registry, reset_hostile_registry
from src.data_models import (
    CombatConfig,
    DiceRoller,
    EncounterDefinition,
    EncounterState,
    HostileGroup,
)
from src.grid.battle_grid import BattleGrid
from src.observability.run_log import reset_run_log

from tests.helpers import ScriptedDice, make_snapshot


# =============================================================================
# GLOBAL STATE
# =============================================================================


@pytest.fixture(autouse=True)
def clean_singletons():
    """Give every test a fresh run log and content registries."""
    log = reset_run_log()
    log.resume()
    reset_action_catalog()
    reset_hostile_registry()
    yield
    reset_run_log()
    reset_action_catalog()
    reset_hostile_registry()


# =============================================================================
# DICE FIXTURES
# =============================================================================


@pytest.fixture
def seeded_dice():
    """Provide a seeded DiceRoller for reproducible tests."""
    return DiceRoller(seed=42)


@pytest.fixture
def scripted_dice():
    """Provide a ScriptedDice with an empty script; tests push faces as needed."""
    return ScriptedDice()


# =============================================================================
# GRID AND ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def grid():
    """Default 8x6 grid with a movement allowance of 6."""
    return BattleGrid(8, 6, 6)


@pytest.fixture
def engine(scripted_dice, grid):
    """Resolution engine drawing from the scripted dice."""
    return ActionResolutionEngine(scripted_dice, grid)


# =============================================================================
# CONTENT FIXTURES
# =============================================================================


@pytest.fixture
def catalog():
    """The built-in weapon and spell catalog."""
    return get_action_catalog()


@pytest.fixture
def hostile_registry():
    """The built-in hostile templates."""
    return get_hostile_registry()


# =============================================================================
# ENCOUNTER FIXTURES
# =============================================================================


@pytest.fixture
def encounter_state():
    """An empty encounter state."""
    return EncounterState()


@pytest.fixture
def sink():
    """Event sink that records everything it receives."""
    return RecordingEventSink()


@pytest.fixture
def registry(encounter_state, grid, hostile_registry, catalog, sink):
    """Combatant registry over an empty encounter state."""
    return CombatantRegistry(encounter_state, grid, hostile_registry, catalog, sink)


@pytest.fixture
def hero_snapshot():
    """A level 1 fighter with a longsword and a shortbow."""
    return make_snapshot(key="hero", name="Hero", hp=20)


@pytest.fixture
def wizard_snapshot():
    """A level 1 wizard ally with two first-level slots."""
    return make_snapshot(
        key="wren",
        name="Wren",
        hp=10,
        weapons=["dagger"],
        cantrips=["fire_bolt"],
        prepared_spells=["magic_missile", "burning_hands", "sleep"],
        spell_slots={1: 2},
        spellcasting_ability="INT",
        ability_scores={"STR": 8, "DEX": 14, "CON": 12, "INT": 16, "WIS": 10, "CHA": 10},
        armor_class=12,
    )


@pytest.fixture
def two_goblins():
    """Encounter definition with a single group of two goblins."""
    return EncounterDefinition(hostiles=[HostileGroup("goblin", 2)])


@pytest.fixture
def instant_config():
    """Config with every presentation delay disabled."""
    return CombatConfig(autonomous_turn_delay=0.0, target_resolution_delay=0.0)


@pytest.fixture
def make_controller(instant_config, sink):
    """
    Factory for controllers sharing the recording sink.

    Usage:
        controller = make_controller(ScriptedDice([18, 2, 1]))
    """
    def _make(dice=None, config=None, pacing=None):
        return EncounterController(
            config or instant_config,
            sink=sink,
            pacing=pacing,
            dice=dice or ScriptedDice(),
        )
    return _make
