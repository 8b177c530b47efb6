"""
Integration tests for the Encounter Controller.

Initiative is scripted so each test knows who acts first:
- ScriptedDice([18, 2, 1]) puts the hero first, then Goblin 1, then Goblin 2
- ScriptedDice([1, 20, 19]) puts Goblin 1 first, then Goblin 2, then the hero
Later dice fall back to the seeded generator unless a test pushes faces.
"""

from unittest.mock import MagicMock

import pytest

from src.combat.errors import (
    ActionNotAllowed,
    CombatError,
    InvalidEncounterDefinition,
    NoLegalTarget,
    NoSlotAvailable,
)
from src.combat.pacing import PacingScheduler
from src.data_models import (
    CombatConfig,
    EncounterDefinition,
    EncounterPhase,
    HostileGroup,
    InteractionMode,
    LogCategory,
    Position,
    StatusEffect,
)
from src.observability.run_log import get_run_log

from tests.helpers import FakeClock, ScriptedDice, make_snapshot

HERO_FIRST = (18, 2, 1)
GOBLINS_FIRST = (1, 20, 19)


def _start(controller, definition, snapshot, allies=()):
    controller.initialize(definition, snapshot, allies)
    controller.begin_combat()
    return controller


def _texts(entries):
    return [e.text for e in entries]


# =============================================================================
# SETUP
# =============================================================================


class TestInitialize:
    """Tests for encounter setup."""

    def test_initialize_rolls_initiative(self, make_controller, two_goblins, hero_snapshot):
        """Test initialize builds combatants, rolls initiative and shows it."""
        controller = make_controller(ScriptedDice(HERO_FIRST))
        state = controller.initialize(two_goblins, hero_snapshot)

        assert state.phase == EncounterPhase.INITIATIVE_DISPLAY
        assert set(state.combatants) == {"player", "enemy:goblin:0", "enemy:goblin:1"}
        assert [e.combatant_id for e in state.turn_order] == ["player", "enemy:goblin:0", "enemy:goblin:1"]
        assert state.log[0].category == LogCategory.COMBAT_START
        assert state.log[0].text == "Combat begins! 2 hostiles stand against you."
        assert [e.category for e in state.log[1:]] == [LogCategory.INITIATIVE] * 3

    def test_initialize_with_allies(self, make_controller, two_goblins, hero_snapshot, wizard_snapshot):
        """Test allies join the encounter and the turn order."""
        controller = make_controller(ScriptedDice([18, 15, 2, 1]))
        state = controller.initialize(two_goblins, hero_snapshot, [wizard_snapshot])
        assert [e.combatant_id for e in state.turn_order][:2] == ["player", "ally:wren"]

    def test_invalid_definition_leaves_nothing_behind(self, make_controller, hero_snapshot):
        """Test a definition with no valid group raises and registers nothing."""
        controller = make_controller()
        with pytest.raises(InvalidEncounterDefinition):
            controller.initialize(EncounterDefinition([HostileGroup("dragon", 1)]), hero_snapshot)

        assert controller.state.phase == EncounterPhase.INITIALIZING
        assert controller.state.combatants == {}
        assert controller.state.turn_order == ()

    def test_initialize_after_failure(self, make_controller, two_goblins, hero_snapshot):
        """Test a valid definition can follow a rejected one."""
        controller = make_controller()
        with pytest.raises(InvalidEncounterDefinition):
            controller.initialize(EncounterDefinition([HostileGroup("dragon", 1)]), hero_snapshot)
        controller.initialize(two_goblins, hero_snapshot)
        assert controller.state.phase == EncounterPhase.INITIATIVE_DISPLAY

    def test_skipped_groups_reported(self, make_controller, hero_snapshot):
        """Test unknown groups are skipped and reported in the summary."""
        controller = make_controller()
        controller.initialize(
            EncounterDefinition([HostileGroup("dragon", 1), HostileGroup("goblin", 1)]), hero_snapshot
        )
        summary = controller.get_combat_summary()
        assert summary["skipped_groups"] == ["dragon"]
        assert summary["hostiles_remaining"] == 1

    def test_cannot_initialize_twice(self, make_controller, two_goblins, hero_snapshot):
        """Test initialize is rejected once the encounter is set up."""
        controller = make_controller()
        controller.initialize(two_goblins, hero_snapshot)
        with pytest.raises(ActionNotAllowed):
            controller.initialize(two_goblins, hero_snapshot)

    def test_controlled_start_position(self, make_controller, hero_snapshot):
        """Test the definition can place the controlled actor."""
        controller = make_controller()
        definition = EncounterDefinition([HostileGroup("goblin", 1)], controlled_start_position=Position(2, 4))
        controller.initialize(definition, hero_snapshot)
        assert controller.state.positions["player"] == Position(2, 4)


class TestBeginCombat:
    """Tests for starting the first turn."""

    def test_player_first(self, make_controller, two_goblins, hero_snapshot):
        """Test the hero winning initiative gets the first turn."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        assert controller.state.phase == EncounterPhase.PLAYER_TURN
        assert controller.current_combatant().combatant_id == "player"

    def test_hostiles_first(self, make_controller, two_goblins):
        """Test hostiles winning initiative act before the hero's turn."""
        controller = _start(
            make_controller(ScriptedDice(GOBLINS_FIRST)), two_goblins, make_snapshot(hp=200)
        )
        assert controller.state.phase == EncounterPhase.PLAYER_TURN
        assert controller.state.current_turn_index == 2
        actors = [a.actor_id for a in get_run_log().get_actions()]
        assert actors == ["enemy:goblin:0", "enemy:goblin:1"]

    def test_begin_before_initialize(self, make_controller):
        """Test combat cannot begin before setup."""
        with pytest.raises(ActionNotAllowed):
            make_controller().begin_combat()

    def test_begin_twice(self, make_controller, two_goblins, hero_snapshot):
        """Test combat can only begin once."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        with pytest.raises(ActionNotAllowed):
            controller.begin_combat()

    def test_phase_changes_reach_sink(self, make_controller, two_goblins, hero_snapshot, sink):
        """Test the sink sees every phase change and every log entry."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        assert sink.phases == [
            (EncounterPhase.INITIALIZING, EncounterPhase.INITIATIVE_DISPLAY),
            (EncounterPhase.INITIATIVE_DISPLAY, EncounterPhase.PLAYER_TURN),
        ]
        assert sink.log == controller.state.log


# =============================================================================
# TERMINAL CONDITIONS
# =============================================================================


class TestTerminalConditions:
    """Tests for victory and defeat."""

    def test_player_final_blow_is_victory(self, make_controller, two_goblins, hero_snapshot):
        """Test killing the last hostile ends the encounter in victory at once."""
        dice = ScriptedDice(HERO_FIRST)
        controller = _start(make_controller(dice), two_goblins, hero_snapshot)
        controller.state.combatants["enemy:goblin:1"].hp_current = 0
        controller.state.combatants["enemy:goblin:0"].hp_current = 3
        dice.push(15, 3)

        controller.select_action("attack:shortbow")
        controller.select_target("enemy:goblin:0")

        assert controller.state.phase == EncounterPhase.VICTORY
        texts = _texts(controller.state.log)
        assert "Goblin 1 has been defeated!" in texts
        assert controller.state.log[-1].category == LogCategory.VICTORY
        summary = controller.get_combat_summary()
        assert summary["hostiles_defeated"] == 2
        assert summary["xp_earned"] == 100

    def test_hostile_kills_hero_is_defeat(self, make_controller, two_goblins, sink):
        """Test a hostile dropping the last friendly ends the encounter in defeat."""
        dice = ScriptedDice(GOBLINS_FIRST)
        controller = make_controller(dice)
        controller.initialize(two_goblins, make_snapshot(hp=20))
        controller.sync_hp("player", 1)
        dice.push(20, 1)

        controller.begin_combat()

        assert controller.state.phase == EncounterPhase.DEFEAT
        texts = _texts(controller.state.log)
        assert "Critical hit! Goblin 1 deals 6 damage to Hero!" in texts
        assert "Hero has been defeated!" in texts
        assert controller.state.log[-1].category == LogCategory.DEFEAT
        assert sink.hp_by_id["player"] == 0
        assert [a.actor_id for a in get_run_log().get_actions()] == ["enemy:goblin:0"]

    def test_defeat_detected_from_external_hp(self, make_controller, two_goblins, hero_snapshot):
        """Test defeat is detected whatever brought the party down."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        controller.sync_hp("player", 0)
        controller.end_turn()
        assert controller.state.phase == EncounterPhase.DEFEAT

    def test_no_intents_after_the_end(self, make_controller, two_goblins, hero_snapshot):
        """Test nothing is accepted once the encounter is over."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        controller.sync_hp("player", 0)
        controller.end_turn()
        with pytest.raises(ActionNotAllowed):
            controller.select_action("attack:shortbow")
        with pytest.raises(ActionNotAllowed):
            controller.end_turn()

    def test_party_down_before_first_turn_is_defeat(self, make_controller, two_goblins, hero_snapshot):
        """Test a party already at 0 HP loses as combat begins, before any hostile acts."""
        controller = make_controller(ScriptedDice(GOBLINS_FIRST))
        controller.initialize(two_goblins, hero_snapshot)
        controller.sync_hp("player", 0)

        controller.begin_combat()

        assert controller.state.phase == EncounterPhase.DEFEAT
        assert get_run_log().get_actions() == []
        assert not any("finds no one to attack" in t for t in _texts(controller.state.log))
        assert controller.state.log[-1].category == LogCategory.DEFEAT

    def test_hostiles_down_before_first_turn_is_victory(self, make_controller, two_goblins, hero_snapshot):
        """Test hostiles already at 0 HP end the encounter as combat begins."""
        controller = make_controller(ScriptedDice(HERO_FIRST))
        controller.initialize(two_goblins, hero_snapshot)
        for hostile in controller.state.get_hostiles():
            hostile.hp_current = 0

        controller.begin_combat()

        assert controller.state.phase == EncounterPhase.VICTORY
        assert get_run_log().get_actions() == []


# =============================================================================
# TURN DISPATCH
# =============================================================================


class TestDispatch:
    """Tests for walking the turn order."""

    def test_dead_hostile_is_skipped(self, make_controller, two_goblins, hero_snapshot):
        """Test a dead hostile's turn resolves nothing and adds no log entries."""
        controller = _start(
            make_controller(ScriptedDice([18, 5, 10])), two_goblins, make_snapshot(hp=200)
        )
        assert [e.combatant_id for e in controller.state.turn_order] == [
            "player", "enemy:goblin:1", "enemy:goblin:0",
        ]
        controller.state.combatants["enemy:goblin:1"].hp_current = 0
        controller.engine.resolve = MagicMock(wraps=controller.engine.resolve)
        log_before = len(controller.state.log)

        controller.end_turn()

        actors = [c.args[0].combatant_id for c in controller.engine.resolve.call_args_list]
        assert actors == ["enemy:goblin:0"]
        new_entries = controller.state.log[log_before:]
        assert not any("Goblin 2" in e.text for e in new_entries)
        assert controller.state.phase == EncounterPhase.PLAYER_TURN
        assert controller.state.round_counter == 2

    def test_missing_combatant_is_logged_and_skipped(self, make_controller, two_goblins):
        """Test a turn-order entry with no combatant is skipped with an error entry."""
        controller = _start(
            make_controller(ScriptedDice(HERO_FIRST)), two_goblins, make_snapshot(hp=200)
        )
        del controller.state.combatants["enemy:goblin:0"]
        controller.end_turn()

        errors = [e for e in controller.state.log if e.category == LogCategory.ERROR]
        assert len(errors) == 1
        assert "enemy:goblin:0" in errors[0].text
        assert controller.state.phase == EncounterPhase.PLAYER_TURN

    def test_incapacitated_hero_loses_turn(self, make_controller, two_goblins):
        """Test an incapacitated hero is passed over until the effect wears off."""
        controller = make_controller(ScriptedDice(HERO_FIRST))
        controller.initialize(two_goblins, make_snapshot(hp=200))
        controller.state.combatants["player"].status_effects.append(StatusEffect("unconscious", 1))

        controller.begin_combat()

        texts = _texts(controller.state.log)
        assert "Hero cannot act this turn." in texts
        assert "Hero is no longer unconscious" in texts
        assert controller.state.phase == EncounterPhase.PLAYER_TURN
        assert controller.state.round_counter == 2
        assert controller.state.get_controlled().can_act

    def test_full_round_returns_to_player(self, make_controller, two_goblins):
        """Test ending the turn runs every hostile and comes back to the hero."""
        controller = _start(
            make_controller(ScriptedDice(HERO_FIRST)), two_goblins, make_snapshot(hp=200)
        )
        controller.end_turn()
        assert controller.state.phase == EncounterPhase.PLAYER_TURN
        assert controller.state.round_counter == 2
        assert [a.actor_id for a in get_run_log().get_actions()] == ["enemy:goblin:0", "enemy:goblin:1"]

    def test_one_transition_per_hostile_handoff(self, make_controller, two_goblins, sink):
        """Test ending the turn records a self-transition only between two hostile turns."""
        controller = _start(
            make_controller(ScriptedDice(HERO_FIRST)), two_goblins, make_snapshot(hp=200)
        )
        controller.end_turn()

        executing = (EncounterPhase.EXECUTING_TURN, EncounterPhase.EXECUTING_TURN)
        assert sink.phases[2:] == [
            (EncounterPhase.PLAYER_TURN, EncounterPhase.EXECUTING_TURN),
            executing,
            (EncounterPhase.EXECUTING_TURN, EncounterPhase.PLAYER_TURN),
        ]
        triggers = [t.trigger for t in controller.machine.state_history]
        assert triggers.count("next_autonomous_turn") == 1


# =============================================================================
# PLAYER INTENTS
# =============================================================================


class TestActionSelection:
    """Tests for choosing actions and targets."""

    def test_available_actions(self, make_controller, two_goblins, hero_snapshot):
        """Test the hero's actions are listed during their turn."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        ids = [a.action_id for a in controller.available_actions()]
        assert ids == ["attack:longsword", "attack:shortbow"]

    def test_no_legal_target_spends_nothing(self, make_controller, two_goblins, hero_snapshot):
        """Test a melee attack with nobody adjacent is rejected without cost."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        with pytest.raises(NoLegalTarget):
            controller.select_action("attack:longsword")
        turn = controller.state.player_turn
        assert not turn.action_used
        assert turn.mode == InteractionMode.NONE

    def test_unknown_action(self, make_controller, two_goblins, hero_snapshot):
        """Test an action the hero does not have is rejected."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        with pytest.raises(ActionNotAllowed):
            controller.select_action("spell:fireball")

    def test_one_action_per_turn(self, make_controller, two_goblins, hero_snapshot):
        """Test a second action in the same turn is rejected."""
        dice = ScriptedDice(HERO_FIRST)
        controller = _start(make_controller(dice), two_goblins, hero_snapshot)
        dice.push(2)

        controller.select_action("attack:shortbow")
        result = controller.select_target("enemy:goblin:0")

        assert result is not None
        assert result.damage_events == []
        assert controller.state.player_turn.action_used
        assert controller.available_actions() == []
        with pytest.raises(ActionNotAllowed):
            controller.select_action("attack:shortbow")

    def test_target_by_cell(self, make_controller, two_goblins, hero_snapshot):
        """Test a target can be picked by its cell."""
        dice = ScriptedDice(HERO_FIRST)
        controller = _start(make_controller(dice), two_goblins, hero_snapshot)
        dice.push(15, 3)
        controller.select_action("attack:shortbow")
        result = controller.select_target(Position(4, 1))
        assert result.target_ids == ["enemy:goblin:0"]
        assert controller.state.combatants["enemy:goblin:0"].hp_current == 2

    def test_illegal_target(self, make_controller, two_goblins, hero_snapshot):
        """Test the hero cannot target themself with an attack."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        controller.select_action("attack:shortbow")
        with pytest.raises(NoLegalTarget):
            controller.select_target("player")
        with pytest.raises(NoLegalTarget):
            controller.select_target(Position(0, 0))
        assert controller.state.player_turn.pending_action is not None

    def test_target_without_action(self, make_controller, two_goblins, hero_snapshot):
        """Test a target needs a selected action."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        with pytest.raises(ActionNotAllowed):
            controller.select_target("enemy:goblin:0")

    def test_intents_outside_player_turn(self, make_controller, two_goblins, hero_snapshot):
        """Test intents are rejected before combat begins."""
        controller = make_controller(ScriptedDice(HERO_FIRST))
        controller.initialize(two_goblins, hero_snapshot)
        with pytest.raises(ActionNotAllowed):
            controller.select_action("attack:shortbow")
        with pytest.raises(ActionNotAllowed):
            controller.toggle_movement_mode()
        with pytest.raises(ActionNotAllowed):
            controller.end_turn()
        assert controller.available_actions() == []
        assert not controller.can_end_turn()


class TestSpellSelection:
    """Tests for casting spells as the controlled actor."""

    def _caster(self, spells, slots):
        return make_snapshot(
            weapons=["dagger"],
            prepared_spells=spells,
            spell_slots=slots,
            spellcasting_ability="INT",
            ability_scores={"STR": 8, "DEX": 14, "CON": 12, "INT": 16, "WIS": 10, "CHA": 10},
        )

    def test_multi_target_spell(self, make_controller, two_goblins, sink):
        """Test magic missile waits for distinct targets, then resolves once."""
        dice = ScriptedDice(HERO_FIRST)
        controller = _start(make_controller(dice), two_goblins, self._caster(["magic_missile"], {1: 1}))
        dice.push(1, 1)

        controller.select_action("spell:magic_missile")
        assert controller.state.player_turn.required_targets == 2
        assert controller.select_target("enemy:goblin:0") is None
        assert controller.selectable_targets() == ["enemy:goblin:1"]
        with pytest.raises(NoLegalTarget):
            controller.select_target("enemy:goblin:0")
        result = controller.select_target("enemy:goblin:1")

        assert result.target_ids == ["enemy:goblin:0", "enemy:goblin:1"]
        assert [c.hp_current for c in controller.state.get_hostiles()] == [5, 5]
        assert controller.state.get_controlled().spell_slots[1].available == 0
        assert len(sink.slots) == 1

    def test_single_remaining_target(self, make_controller, two_goblins):
        """Test a multi-target spell needs only as many targets as there are."""
        controller = _start(
            make_controller(ScriptedDice(HERO_FIRST)), two_goblins, self._caster(["magic_missile"], {1: 1})
        )
        controller.state.combatants["enemy:goblin:1"].hp_current = 0
        controller.select_action("spell:magic_missile")
        assert controller.state.player_turn.required_targets == 1

    def test_no_slot_available(self, make_controller, two_goblins):
        """Test a spell without a slot is rejected and not offered."""
        controller = _start(
            make_controller(ScriptedDice(HERO_FIRST)), two_goblins, self._caster(["magic_missile"], {1: 0})
        )
        assert "spell:magic_missile" not in [a.action_id for a in controller.available_actions()]
        with pytest.raises(NoSlotAvailable):
            controller.select_action("spell:magic_missile")
        assert not controller.state.player_turn.action_used

    def test_area_spell(self, make_controller, two_goblins):
        """Test an area spell resolves on its origin cell."""
        dice = ScriptedDice(HERO_FIRST)
        controller = _start(make_controller(dice), two_goblins, self._caster(["burning_hands"], {1: 1}))
        dice.push(1, 1, 1, 1, 1, 1)

        controller.select_action("spell:burning_hands")
        with pytest.raises(NoLegalTarget):
            controller.select_target(Position(7, 5))
        result = controller.select_target(Position(4, 1))

        assert sorted(result.target_ids) == ["enemy:goblin:0", "enemy:goblin:1"]
        assert [c.hp_current for c in controller.state.get_hostiles()] == [4, 4]

    def test_self_spell_resolves_at_once(self, make_controller, two_goblins):
        """Test a self-targeted spell needs no target."""
        controller = _start(
            make_controller(ScriptedDice(HERO_FIRST)), two_goblins, self._caster(["shield_of_faith"], {1: 1})
        )
        controller.select_action("spell:shield_of_faith")
        assert controller.state.player_turn.action_used
        assert controller.state.get_controlled().has_status("shielded")

    def test_shield_of_faith_raises_armor_class(self, make_controller, two_goblins):
        """Test an attack that would meet the caster's base AC misses while shielded."""
        dice = ScriptedDice(HERO_FIRST)
        controller = _start(make_controller(dice), two_goblins, self._caster(["shield_of_faith"], {1: 1}))
        controller.select_action("spell:shield_of_faith")
        dice.push(10, 10)

        controller.end_turn()

        texts = _texts(controller.state.log)
        assert "Goblin 1 misses Hero (14 vs AC 16)" in texts
        assert "Goblin 2 misses Hero (14 vs AC 16)" in texts
        hero = controller.state.get_controlled()
        assert hero.hp_current == hero.hp_max

    def test_hold_person_costs_the_target_a_turn(self, make_controller, two_goblins):
        """Test a one-round hold makes the target lose its next turn, then wears off."""
        controller = _start(
            make_controller(ScriptedDice(HERO_FIRST)),
            two_goblins,
            self._caster(["hold_person"], {2: 1}),
        )
        controller.state.get_controlled().hp_max = 200
        controller.state.get_controlled().hp_current = 200
        controller.select_action("spell:hold_person")
        controller.select_target("enemy:goblin:0")

        controller.end_turn()

        texts = _texts(controller.state.log)
        assert "Goblin 1 is paralyzed and cannot act." in texts
        assert "Goblin 1 is no longer paralyzed" in texts
        assert [a.actor_id for a in get_run_log().get_actions()] == ["player", "enemy:goblin:1"]
        assert controller.state.phase == EncounterPhase.PLAYER_TURN
        assert controller.state.round_counter == 2

        controller.end_turn()
        assert "enemy:goblin:0" in [a.actor_id for a in get_run_log().get_actions()]


class TestMovement:
    """Tests for the controlled actor's movement."""

    def test_move(self, make_controller, two_goblins, hero_snapshot):
        """Test a legal move in movement mode."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        assert controller.toggle_movement_mode() == InteractionMode.MOVEMENT

        result = controller.move_to((3, 2))

        assert result.success
        assert controller.state.positions["player"] == Position(3, 2)
        turn = controller.state.player_turn
        assert turn.movement_used
        assert turn.mode == InteractionMode.NONE
        assert controller.state.log[-1].text == "Hero moves 2 cells."
        assert controller.can_end_turn()

    def test_one_move_per_turn(self, make_controller, two_goblins, hero_snapshot):
        """Test movement mode cannot be re-entered after moving."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        controller.toggle_movement_mode()
        controller.move_to((2, 2))
        with pytest.raises(ActionNotAllowed):
            controller.toggle_movement_mode()

    def test_move_requires_movement_mode(self, make_controller, two_goblins, hero_snapshot):
        """Test move_to outside movement mode is rejected."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        with pytest.raises(ActionNotAllowed):
            controller.move_to((2, 2))

    def test_illegal_moves_change_nothing(self, make_controller, two_goblins, hero_snapshot):
        """Test occupied, distant and off-grid cells are rejected without spending movement."""
        config = CombatConfig(autonomous_turn_delay=0, target_resolution_delay=0, movement_allowance=2)
        controller = _start(
            make_controller(ScriptedDice(HERO_FIRST), config=config), two_goblins, hero_snapshot
        )
        controller.toggle_movement_mode()
        for cell in [(4, 1), (5, 2), (9, 9), (1, 2)]:
            with pytest.raises(ActionNotAllowed):
                controller.move_to(cell)
        assert controller.state.positions["player"] == Position(1, 2)
        assert not controller.state.player_turn.movement_used
        assert controller.state.player_turn.mode == InteractionMode.MOVEMENT

    def test_modes_are_exclusive(self, make_controller, two_goblins, hero_snapshot):
        """Test entering one mode leaves the other."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        turn = controller.state.player_turn

        controller.select_action("attack:shortbow")
        controller.toggle_movement_mode()
        assert turn.mode == InteractionMode.MOVEMENT
        assert turn.pending_action is None

        controller.select_action("attack:shortbow")
        assert turn.mode == InteractionMode.ACTION

        controller.cancel_selection()
        assert turn.mode == InteractionMode.NONE
        assert turn.pending_action is None

    def test_toggle_leaves_movement_mode(self, make_controller, two_goblins, hero_snapshot):
        """Test toggling twice returns to no mode."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        controller.toggle_movement_mode()
        assert controller.toggle_movement_mode() == InteractionMode.NONE


class TestEndTurn:
    """Tests for ending the controlled actor's turn."""

    def test_can_end_turn_after_spending(self, make_controller, two_goblins, hero_snapshot):
        """Test can_end_turn turns true once something is spent."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        assert not controller.can_end_turn()
        controller.toggle_movement_mode()
        controller.move_to((2, 2))
        assert controller.can_end_turn()

    def test_no_auto_end_by_default(self, make_controller, two_goblins, hero_snapshot):
        """Test the turn stays open after action and movement unless configured."""
        dice = ScriptedDice(HERO_FIRST)
        controller = _start(make_controller(dice), two_goblins, hero_snapshot)
        dice.push(2)
        controller.select_action("attack:shortbow")
        controller.select_target("enemy:goblin:0")
        controller.toggle_movement_mode()
        controller.move_to((2, 2))
        assert controller.state.phase == EncounterPhase.PLAYER_TURN

    def test_auto_end_turn(self, make_controller, two_goblins):
        """Test the turn ends by itself once action and movement are spent."""
        dice = ScriptedDice(HERO_FIRST)
        config = CombatConfig(autonomous_turn_delay=0, target_resolution_delay=0, auto_end_turn=True)
        controller = _start(make_controller(dice, config=config), two_goblins, make_snapshot(hp=200))
        dice.push(2)

        controller.select_action("attack:shortbow")
        controller.select_target("enemy:goblin:0")
        assert controller.state.phase == EncounterPhase.PLAYER_TURN
        controller.toggle_movement_mode()
        controller.move_to((2, 2))

        assert controller.state.phase == EncounterPhase.PLAYER_TURN
        assert controller.state.round_counter == 2
        assert not controller.state.player_turn.action_used


# =============================================================================
# PACING, RESET AND RESTART
# =============================================================================


class TestPacing:
    """Tests for delayed autonomous turns and resolutions."""

    def _paced(self, make_controller, faces):
        clock = FakeClock()
        pacing = PacingScheduler(clock=clock, sleep=clock.sleep)
        config = CombatConfig(autonomous_turn_delay=0.5, target_resolution_delay=0.3)
        dice = ScriptedDice(faces)
        return make_controller(dice, config=config, pacing=pacing), dice, clock, pacing

    def test_autonomous_turn_waits_for_delay(self, make_controller, two_goblins):
        """Test a hostile acts only once its delay has passed."""
        controller, _, clock, pacing = self._paced(make_controller, GOBLINS_FIRST)
        _start(controller, two_goblins, make_snapshot(hp=200))

        assert controller.state.phase == EncounterPhase.EXECUTING_TURN
        assert pacing.pending_count == 1
        assert get_run_log().get_actions() == []

        clock.advance(0.5)
        pacing.run_due()
        assert [a.actor_id for a in get_run_log().get_actions()] == ["enemy:goblin:0"]
        assert pacing.pending_count == 1

        pacing.run_until_idle()
        assert controller.state.phase == EncounterPhase.PLAYER_TURN
        assert pacing.pending_count == 0

    def test_resolution_delay_blocks_input(self, make_controller, two_goblins):
        """Test the action resolves after its delay and input waits meanwhile."""
        controller, dice, clock, pacing = self._paced(make_controller, HERO_FIRST)
        _start(controller, two_goblins, make_snapshot(hp=200))
        dice.push(15, 3)

        controller.select_action("attack:shortbow")
        assert controller.select_target("enemy:goblin:0") is None
        assert not controller.state.player_turn.action_used
        with pytest.raises(ActionNotAllowed):
            controller.toggle_movement_mode()

        pacing.run_until_idle()
        assert controller.state.player_turn.action_used
        assert controller.state.combatants["enemy:goblin:0"].hp_current == 2
        assert clock.sleeps == [0.3]

    def test_end_turn_flushes_pending_resolution(self, make_controller, two_goblins):
        """Test ending the turn resolves a pending action first."""
        controller, dice, _, pacing = self._paced(make_controller, HERO_FIRST)
        _start(controller, two_goblins, make_snapshot(hp=200))
        dice.push(15, 3)

        controller.select_action("attack:shortbow")
        controller.select_target("enemy:goblin:0")
        controller.end_turn()

        assert controller.state.combatants["enemy:goblin:0"].hp_current == 2
        assert controller.state.phase == EncounterPhase.EXECUTING_TURN
        assert pacing.pending_count == 1

    def test_repeated_continuation_ignored(self, make_controller, two_goblins):
        """Test a continuation firing twice for one turn acts once."""
        controller, _, clock, pacing = self._paced(make_controller, GOBLINS_FIRST)
        _start(controller, two_goblins, make_snapshot(hp=200))
        token = controller.current_turn_token()

        clock.advance(0.5)
        pacing.run_due()
        controller._continue_autonomous(token)

        assert [a.actor_id for a in get_run_log().get_actions()] == ["enemy:goblin:0"]


class TestResetAndRestart:
    """Tests for abandoning and restarting encounters."""

    def test_reset_cancels_and_ignores_stale_continuations(self, make_controller, two_goblins):
        """Test a continuation from before a reset never touches the new encounter."""
        clock = FakeClock()
        pacing = PacingScheduler(clock=clock, sleep=clock.sleep)
        config = CombatConfig(autonomous_turn_delay=0.5, target_resolution_delay=0)
        controller = make_controller(ScriptedDice(GOBLINS_FIRST), config=config, pacing=pacing)
        _start(controller, two_goblins, make_snapshot(hp=200))
        stale = controller.current_turn_token()
        old_id = controller.state.encounter_id

        controller.reset()

        assert pacing.pending_count == 0
        assert controller.state.phase == EncounterPhase.INITIALIZING
        assert controller.state.encounter_id != old_id

        controller.initialize(two_goblins, make_snapshot(hp=200))
        log_before = list(controller.state.log)
        controller._continue_autonomous(stale)

        assert controller.state.log == log_before
        assert controller.state.phase == EncounterPhase.INITIATIVE_DISPLAY
        assert get_run_log().get_actions() == []

    def test_reset_after_victory(self, make_controller, two_goblins, hero_snapshot):
        """Test a finished encounter can be reset."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        for hostile in controller.state.get_hostiles():
            hostile.hp_current = 0
        controller.end_turn()
        assert controller.state.phase == EncounterPhase.VICTORY

        controller.reset()
        assert controller.state.phase == EncounterPhase.INITIALIZING
        assert controller.state.combatants == {}

    def test_restart(self, make_controller, two_goblins, hero_snapshot):
        """Test restart sets the same encounter up again from scratch."""
        controller = _start(make_controller(ScriptedDice(HERO_FIRST)), two_goblins, hero_snapshot)
        controller.state.combatants["enemy:goblin:0"].hp_current = 1

        state = controller.restart()

        assert state.phase == EncounterPhase.INITIATIVE_DISPLAY
        assert state.combatants["enemy:goblin:0"].hp_current == 7

    def test_restart_with_seed_replays(self, two_goblins, hero_snapshot, sink):
        """Test a seeded encounter rolls the same initiative after restart."""
        from src.combat.encounter_controller import EncounterController

        config = CombatConfig(autonomous_turn_delay=0, target_resolution_delay=0, seed=11)
        controller = EncounterController(config, sink=sink)
        first = controller.initialize(two_goblins, hero_snapshot).turn_order
        second = controller.restart().turn_order
        assert [(e.combatant_id, e.roll) for e in first] == [(e.combatant_id, e.roll) for e in second]

    def test_restart_before_initialize(self, make_controller):
        """Test there is nothing to restart before the first setup."""
        with pytest.raises(ActionNotAllowed):
            make_controller().restart()


class TestSummary:
    """Tests for get_combat_summary and difficulty."""

    def test_summary(self, make_controller, two_goblins, hero_snapshot):
        """Test the summary describes every combatant."""
        controller = make_controller(ScriptedDice(HERO_FIRST))
        controller.initialize(two_goblins, hero_snapshot)
        summary = controller.get_combat_summary()

        assert summary["phase"] == "initiative-display"
        assert summary["round"] == 1
        assert summary["current_turn"] == "player"
        assert summary["hostiles_remaining"] == 2
        assert summary["xp_earned"] == 0
        hero = next(c for c in summary["combatants"] if c["id"] == "player")
        assert hero["position"] == (1, 2)
        assert hero["team"] == "friendly"
        assert hero["alive"] is True

    def test_estimate_difficulty(self, make_controller, two_goblins):
        """Test the difficulty estimate for two goblins."""
        assert make_controller().estimate_encounter_difficulty(two_goblins) == 38

    def test_combat_error_is_base(self):
        """Test every engine error shares one base class."""
        for error in (ActionNotAllowed, NoLegalTarget, NoSlotAvailable, InvalidEncounterDefinition):
            assert issubclass(error, CombatError)
