"""
Encounter Controller for Grid Skirmish.

Drives one encounter from setup to victory or defeat:

1. initialize(): build combatants, roll initiative -> INITIATIVE_DISPLAY
2. begin_combat(): dispatch the first turn -> PLAYER_TURN or EXECUTING_TURN
3. Player intents (select_action, select_target, toggle_movement_mode,
   move_to, end_turn) during PLAYER_TURN
4. Autonomous turns run through the AutonomousTurnExecutor, optionally
   after a pacing delay
5. After every resolved action, terminal conditions are checked and the
   encounter ends in VICTORY or DEFEAT

The controller is the only writer of the phase and the player's turn state.
Every action, whoever takes it, goes through _submit_action().
"""

from typing import Any, Iterable, Optional, Union
import logging

from src.combat.actions import Action, ActionKind, build_actions, find_action
from src.combat.autonomous import AutonomousTurnExecutor, movement_message
from src.combat.combatant_registry import CombatantRegistry, estimate_encounter_difficulty
from src.combat.errors import (
    ActionNotAllowed,
    CombatError,
    InvalidEncounterDefinition,
    MissingEntityForTurn,
    NoLegalTarget,
    NoSlotAvailable,
)
from src.combat.event_sink import EventSink, NullEventSink
from src.combat.initiative import InitiativeScheduler
from src.combat.pacing import PacingScheduler, TurnToken
from src.combat.resolution import ActionResolutionEngine, ResolutionOutcome, ResolutionResult
from src.content_loader.action_catalog import ActionCatalog, get_action_catalog
from src.content_loader.hostile_registry import HostileRegistry, get_hostile_registry
from src.data_models import (
    CharacterSnapshot,
    CombatConfig,
    Combatant,
    CombatantKind,
    DiceRoller,
    EncounterDefinition,
    EncounterPhase,
    EncounterState,
    InteractionMode,
    LogCategory,
    LogEntry,
    Position,
    TargetType,
)
from src.game_state.state_machine import StateMachine
from src.grid.battle_grid import BattleGrid, MovementResult
from src.observability.run_log import get_run_log

logger = logging.getLogger(__name__)


class EncounterController:
    """
    Owns the EncounterState of one encounter and everything that drives it.

    Usage:
        controller = EncounterController(CombatConfig(seed=42))
        controller.initialize(
            EncounterDefinition.from_dict({"hostiles": [{"type": "goblin", "count": 2}]}),
            hero_snapshot,
        )
        controller.begin_combat()
        controller.select_action("attack:longsword")
        controller.select_target("enemy:goblin:0")
        controller.end_turn()
    """

    def __init__(
        self,
        config: Optional[CombatConfig] = None,
        hostile_registry: Optional[HostileRegistry] = None,
        catalog: Optional[ActionCatalog] = None,
        sink: Optional[EventSink] = None,
        pacing: Optional[PacingScheduler] = None,
        dice: Optional[DiceRoller] = None,
    ):
        self.config = config or CombatConfig()
        self.hostile_registry = hostile_registry or get_hostile_registry()
        self.catalog = catalog or get_action_catalog()
        self.sink = sink or NullEventSink()
        self.pacing = pacing or PacingScheduler()
        self.dice = dice or DiceRoller(seed=self.config.seed)
        self.grid = BattleGrid(
            self.config.grid_width,
            self.config.grid_height,
            self.config.movement_allowance,
        )
        self.engine = ActionResolutionEngine(self.dice, self.grid)

        self.last_result: Optional[ResolutionResult] = None
        self._generation = 0
        self._last_inputs: Optional[tuple[EncounterDefinition, CharacterSnapshot, tuple[CharacterSnapshot, ...]]] = None
        self._pending_resolution: Optional[tuple] = None
        self._new_state()

    def _new_state(self) -> None:
        """Discard everything encounter-scoped and start over in INITIALIZING."""
        self._generation += 1
        self.state = EncounterState(generation=self._generation)
        self.machine = StateMachine()
        self.machine.register_post_hook(self._on_phase_changed)
        self.registry = CombatantRegistry(
            self.state, self.grid, self.hostile_registry, self.catalog, self.sink
        )
        self.initiative = InitiativeScheduler(self.state, self.dice)
        self.executor = AutonomousTurnExecutor(
            self.registry, self.engine, self._submit_action, self._emit
        )
        self.last_result = None
        self._pending_resolution = None
        self._autonomous_turn_taken = False

    # =========================================================================
    # OUTPUT
    # =========================================================================

    def _emit(self, entries: Iterable[LogEntry]) -> None:
        for entry in entries:
            self.state.log.append(entry)
            self.sink.on_log(entry)
            logger.debug(f"[{entry.category.value}] {entry.text}")

    def _on_phase_changed(
        self, old: EncounterPhase, new: EncounterPhase, trigger: str, context: dict[str, Any]
    ) -> None:
        self.state.phase = new
        if old != new:
            self._autonomous_turn_taken = False
        self.sink.on_phase_change(old, new)

    def _enter_phase(self, target: EncounterPhase) -> None:
        """
        Move to target. EXECUTING_TURN only loops onto itself when one
        autonomous turn follows another.
        """
        if self.state.phase == target:
            if target != EncounterPhase.EXECUTING_TURN or not self._autonomous_turn_taken:
                return
        self.machine.transition_to(
            target,
            {"round": self.state.round_counter, "turn_index": self.state.current_turn_index},
        )

    # =========================================================================
    # SETUP
    # =========================================================================

    def initialize(
        self,
        definition: EncounterDefinition,
        controlled: CharacterSnapshot,
        allies: Iterable[CharacterSnapshot] = (),
    ) -> EncounterState:
        """
        Build the combatants and roll initiative.

        Args:
            definition: Hostile groups and optional placements
            controlled: Snapshot of the controlled actor
            allies: Snapshots of allied combatants

        Returns:
            The encounter state, now in INITIATIVE_DISPLAY

        Raises:
            InvalidEncounterDefinition: If no hostile group resolves; the
                encounter stays in INITIALIZING with nothing registered
            ActionNotAllowed: If this encounter was already initialized
        """
        if self.state.phase != EncounterPhase.INITIALIZING:
            raise ActionNotAllowed("Encounter already initialized; reset it first")

        ally_snapshots = tuple(allies)
        self._last_inputs = (definition, controlled, ally_snapshots)
        self.state.definition = definition

        try:
            player = self.registry.register_controlled(controlled, definition.controlled_start_position)
            ally_combatants = self.registry.register_allies(ally_snapshots)
            hostiles = self.registry.spawn_hostiles(definition)
        except InvalidEncounterDefinition:
            logger.error("Encounter definition has no valid hostile group")
            self._new_state()
            raise

        self.initiative.roll_initiative(player, ally_combatants, hostiles)

        noun = "hostile" if len(hostiles) == 1 else "hostiles"
        self._emit([LogEntry(f"Combat begins! {len(hostiles)} {noun} stand against you.", LogCategory.COMBAT_START)])
        self._emit(self.initiative.log_entries())

        get_run_log().log_custom(
            "encounter_initialized",
            {
                "encounter_id": self.state.encounter_id,
                "combatants": list(self.state.combatants.keys()),
                "skipped_groups": list(self.state.skipped_groups),
                "turn_order": [e.combatant_id for e in self.state.turn_order],
            },
        )
        self.machine.transition("initiative_rolled")
        return self.state

    def begin_combat(self) -> None:
        """
        Start the first turn.

        Raises:
            ActionNotAllowed: Outside INITIATIVE_DISPLAY
            CombatError: If the turn order is empty
        """
        if self.state.phase != EncounterPhase.INITIATIVE_DISPLAY:
            raise ActionNotAllowed(f"Cannot begin combat in phase {self.state.phase.value}")
        if self.initiative.current_turn() is None:
            raise CombatError("Cannot begin combat with an empty turn order")
        self._dispatch()

    def reset(self) -> None:
        """
        Abandon the current encounter.

        Cancels every pending continuation and starts a fresh EncounterState
        in INITIALIZING. Continuations that still fire are ignored because
        the generation has moved on.
        """
        cancelled = self.pacing.cancel_all()
        self.executor.reset()
        old_id = self.state.encounter_id
        self._new_state()
        get_run_log().log_custom(
            "encounter_reset",
            {"previous_encounter_id": old_id, "cancelled_continuations": cancelled},
        )
        logger.info(f"Encounter {old_id} reset")

    def restart(self) -> EncounterState:
        """Reset and initialize again with the previous inputs (and seed, if any)."""
        if self._last_inputs is None:
            raise ActionNotAllowed("Nothing to restart; initialize an encounter first")
        definition, controlled, allies = self._last_inputs
        self.reset()
        if self.config.seed is not None:
            self.dice.set_seed(self.config.seed)
        return self.initialize(definition, controlled, allies)

    # =========================================================================
    # TURN DISPATCH
    # =========================================================================

    def current_turn_token(self) -> Optional[TurnToken]:
        entry = self.initiative.current_turn()
        if entry is None:
            return None
        return TurnToken(
            generation=self.state.generation,
            round=self.state.round_counter,
            index=self.state.current_turn_index,
            combatant_id=entry.combatant_id,
        )

    def current_combatant(self) -> Optional[Combatant]:
        entry = self.initiative.current_turn()
        return self.registry.get(entry.combatant_id) if entry else None

    def _check_terminal(self) -> bool:
        """Move to VICTORY or DEFEAT if the fight is decided. Returns True if it is over."""
        if self.state.is_over:
            return True
        if self.state.phase not in (
            EncounterPhase.INITIATIVE_DISPLAY,
            EncounterPhase.PLAYER_TURN,
            EncounterPhase.EXECUTING_TURN,
        ):
            return False

        outcome = self.registry.evaluate_outcome()
        if outcome is None:
            return False

        self.pacing.cancel_all()
        self._pending_resolution = None
        if outcome == EncounterPhase.VICTORY:
            self._emit([LogEntry("Victory! Every hostile has been defeated.", LogCategory.VICTORY)])
        else:
            self._emit([LogEntry("Defeat... the party has fallen.", LogCategory.DEFEAT)])
        self._enter_phase(outcome)
        logger.info(f"Encounter {self.state.encounter_id} ended: {outcome.value}")
        return True

    def _dispatch(self) -> None:
        """
        Hand the turn to whoever is next, skipping the dead and the missing.

        Zero-delay autonomous turns are run inline and the loop moves on;
        with a delay, a continuation is scheduled and dispatch returns.
        """
        skips = 0
        while not self._check_terminal():
            entry = self.initiative.current_turn()
            if entry is None:
                return

            combatant = self.registry.get(entry.combatant_id)
            if combatant is None or not combatant.is_alive:
                if combatant is None:
                    error = MissingEntityForTurn(entry.combatant_id)
                    logger.error(str(error))
                    self._emit([LogEntry(f"{error}; skipping turn", LogCategory.ERROR)])
                skips += 1
                if skips > len(self.state.turn_order):
                    logger.error("No combatant in the turn order can act")
                    return
                self.initiative.advance()
                continue
            skips = 0

            if combatant.kind == CombatantKind.CONTROLLED:
                self._enter_phase(EncounterPhase.PLAYER_TURN)
                self.state.player_turn.reset()
                if combatant.can_act:
                    return
                self._emit([LogEntry(f"{combatant.name} cannot act this turn.", LogCategory.INFO)])
                self._enter_phase(EncounterPhase.EXECUTING_TURN)
                self._finish_turn()
                continue

            self._enter_phase(EncounterPhase.EXECUTING_TURN)
            self._autonomous_turn_taken = True
            token = self.current_turn_token()
            delay = self.config.autonomous_turn_delay
            if delay > 0:
                self.pacing.schedule(token, delay, lambda: self._continue_autonomous(token))
                return

            if not self._run_autonomous(token):
                return
            self._finish_turn()

    def _finish_turn(self) -> None:
        """Count down the status effects of whoever just acted, then advance."""
        entry = self.initiative.current_turn()
        if entry is not None:
            self._emit(self.registry.tick_status_effects(entry.combatant_id))
        self.initiative.advance()

    def _run_autonomous(self, token: TurnToken) -> bool:
        """
        Run one autonomous turn.

        Returns:
            True if the turn is finished and the order should advance
        """
        try:
            execution = self.executor.execute_turn(token, self.state)
        except MissingEntityForTurn as e:
            logger.error(str(e))
            self._emit([LogEntry(f"{e}; skipping turn", LogCategory.ERROR)])
            return True

        if execution is None:
            return False
        if self._check_terminal():
            return False
        return True

    def _continue_autonomous(self, token: TurnToken) -> None:
        """Continuation for a delayed autonomous turn."""
        if token.generation != self.state.generation or self.state.is_over:
            logger.debug(f"Stale continuation {token} ignored")
            return
        if token != self.current_turn_token():
            logger.debug(f"Continuation {token} no longer current; ignored")
            return
        if self._run_autonomous(token):
            self._finish_turn()
            self._dispatch()

    # =========================================================================
    # RESOLUTION PATH
    # =========================================================================

    def _submit_action(
        self,
        actor: Combatant,
        action: Action,
        targets: Union[list[str], Position, None],
    ) -> ResolutionResult:
        """Resolve an action and apply its events. Shared by every combatant."""
        result = self.engine.resolve(actor, action, self.state, targets)
        deaths = self.registry.apply_result(result) if result.success else []
        self._emit(result.log_entries)
        self._emit(deaths)
        get_run_log().log_action(
            actor_id=actor.combatant_id,
            action_id=action.action_id,
            target_ids=result.target_ids,
            outcome=result.outcome.value,
            total_damage=result.total_damage,
            total_healing=result.total_healing,
        )
        self.last_result = result
        return result

    # =========================================================================
    # PLAYER INTENTS
    # =========================================================================

    def _require_player_turn(self) -> Combatant:
        if self.state.phase != EncounterPhase.PLAYER_TURN:
            raise ActionNotAllowed(f"Not the player's turn (phase {self.state.phase.value})")
        actor = self.state.get_controlled()
        if actor is None:
            raise MissingEntityForTurn("player")
        return actor

    def _require_idle_input(self) -> Combatant:
        actor = self._require_player_turn()
        if self._pending_resolution is not None:
            raise ActionNotAllowed("An action is being resolved")
        return actor

    def available_actions(self) -> list[Action]:
        """Actions the controlled actor may select right now."""
        if self.state.phase != EncounterPhase.PLAYER_TURN or self.state.player_turn.action_used:
            return []
        actor = self.state.get_controlled()
        if actor is None or not actor.can_act:
            return []
        return [
            a for a in build_actions(actor)
            if a.kind != ActionKind.SPELL or actor.lowest_available_slot(a.level) is not None
        ]

    def selectable_targets(self) -> list[str]:
        """Ids the pending action may still target."""
        pending = self.state.player_turn.pending_action
        actor = self.state.get_controlled()
        if pending is None or actor is None or pending.area_of_effect:
            return []
        chosen = set(self.state.player_turn.pending_targets)
        return [
            c.combatant_id
            for c in self.engine.legal_targets(actor, pending, self.state)
            if c.combatant_id not in chosen
        ]

    def select_action(self, action_id: str) -> Action:
        """
        Choose the controlled actor's action for this turn.

        Selecting an action leaves movement mode. Self-targeted spells
        resolve at once.

        Raises:
            ActionNotAllowed: Outside the player's turn, action already used,
                or unknown action
            NoSlotAvailable: Spell with no slot at or above its level
            NoLegalTarget: Nothing the action could target
        """
        actor = self._require_idle_input()
        turn = self.state.player_turn
        if turn.action_used:
            raise ActionNotAllowed("Action already used this turn")

        action = find_action(actor, action_id)
        if action is None:
            raise ActionNotAllowed(f"{actor.name} has no action '{action_id}'")

        if action.kind == ActionKind.SPELL and actor.lowest_available_slot(action.level) is None:
            raise NoSlotAvailable(actor.combatant_id, action.spell_id, action.level)

        if action.area_of_effect:
            required = 1
        elif action.valid_targets == TargetType.SELF:
            required = 0
        else:
            legal = self.engine.legal_targets(actor, action, self.state)
            if not legal:
                raise NoLegalTarget(f"No legal target for {action.name}")
            required = min(action.projectiles, len(legal))

        turn.clear_selection()
        turn.mode = InteractionMode.ACTION
        turn.pending_action = action
        turn.required_targets = required
        logger.debug(f"Selected {action_id} ({required} targets)")

        if required == 0:
            self._complete_selection()
        return action

    def select_target(self, target: Union[str, Position]) -> Optional[ResolutionResult]:
        """
        Add a target for the pending action.

        Combatant ids and cells are both accepted. Once the required number
        of distinct targets is reached the action resolves.

        Returns:
            The ResolutionResult if the action resolved now, otherwise None

        Raises:
            ActionNotAllowed: Outside the player's turn or with no pending action
            NoLegalTarget: The target is not legal or was already chosen
        """
        actor = self._require_idle_input()
        turn = self.state.player_turn
        action = turn.pending_action
        if action is None:
            raise ActionNotAllowed("No action selected")

        if action.area_of_effect:
            origin = target if isinstance(target, Position) else self.registry.position_of(target)
            if origin is None or not self.engine.is_legal_origin(actor, action, origin, self.state):
                raise NoLegalTarget(f"{target} is not a legal origin for {action.name}")
            turn.pending_origin = origin
            return self._complete_selection()

        if isinstance(target, Position):
            occupant = self.registry.occupant_at(target)
            if occupant is None:
                raise NoLegalTarget(f"No one stands at {target}")
            target_id = occupant.combatant_id
        else:
            target_id = target

        combatant = self.registry.get(target_id)
        if combatant is None or not self.engine.is_legal_target(actor, action, combatant, self.state):
            raise NoLegalTarget(f"{target_id} is not a legal target for {action.name}")
        if target_id in turn.pending_targets:
            raise NoLegalTarget(f"{combatant.name} is already targeted")

        turn.pending_targets.append(target_id)
        if len(turn.pending_targets) >= turn.required_targets:
            return self._complete_selection()
        return None

    def _complete_selection(self) -> Optional[ResolutionResult]:
        key = ("resolve", self.state.generation, self.state.round_counter, self.state.current_turn_index)
        self._pending_resolution = key
        delay = self.config.target_resolution_delay
        if delay > 0:
            generation = self.state.generation
            self.pacing.schedule(key, delay, lambda: self._resolve_pending(generation))
            return None
        return self._resolve_pending(self.state.generation)

    def _resolve_pending(self, generation: int) -> Optional[ResolutionResult]:
        if generation != self.state.generation or self.state.phase != EncounterPhase.PLAYER_TURN:
            return None
        if self._pending_resolution is not None:
            self.pacing.cancel(self._pending_resolution)
        self._pending_resolution = None

        turn = self.state.player_turn
        action = turn.pending_action
        actor = self.state.get_controlled()
        if action is None or actor is None:
            return None

        targets = turn.pending_origin if action.area_of_effect else list(turn.pending_targets)
        result = self._submit_action(actor, action, targets)
        turn.clear_selection()
        if result.outcome == ResolutionOutcome.NO_SLOT_AVAILABLE:
            return result

        turn.action_used = True
        if not self._check_terminal():
            self._maybe_auto_end()
        return result

    def cancel_selection(self) -> None:
        """Drop the pending action without spending anything."""
        self._require_idle_input()
        self.state.player_turn.clear_selection()

    def toggle_movement_mode(self) -> InteractionMode:
        """
        Enter or leave movement mode. Entering it drops any pending action.

        Raises:
            ActionNotAllowed: Outside the player's turn or movement already used
        """
        self._require_idle_input()
        turn = self.state.player_turn
        if turn.mode == InteractionMode.MOVEMENT:
            turn.mode = InteractionMode.NONE
            return turn.mode
        if turn.movement_used:
            raise ActionNotAllowed("Movement already used this turn")
        turn.clear_selection()
        turn.mode = InteractionMode.MOVEMENT
        return turn.mode

    def move_to(self, position: Union[Position, tuple[int, int]]) -> MovementResult:
        """
        Move the controlled actor while in movement mode.

        Raises:
            ActionNotAllowed: Not in movement mode, or the move is illegal
        """
        actor = self._require_idle_input()
        turn = self.state.player_turn
        if turn.mode != InteractionMode.MOVEMENT:
            raise ActionNotAllowed("Movement mode is not active")

        result = self.registry.move(actor.combatant_id, Position.from_value(position))
        if not result.success:
            raise ActionNotAllowed(result.reason)

        turn.movement_used = True
        turn.mode = InteractionMode.NONE
        self._emit([LogEntry(movement_message(actor.name, result.distance), LogCategory.MOVEMENT)])
        self._maybe_auto_end()
        return result

    def can_end_turn(self) -> bool:
        """True once the controlled actor has spent their action or movement."""
        if self.state.phase != EncounterPhase.PLAYER_TURN:
            return False
        turn = self.state.player_turn
        return turn.action_used or turn.movement_used

    def end_turn(self) -> None:
        """
        End the controlled actor's turn and dispatch the next one.

        A resolution still waiting on its pacing delay is carried out first.

        Raises:
            ActionNotAllowed: Outside the player's turn
        """
        self._require_player_turn()
        if self._pending_resolution is not None:
            self._resolve_pending(self.state.generation)
            if self.state.phase != EncounterPhase.PLAYER_TURN:
                return

        turn = self.state.player_turn
        turn.clear_selection()
        turn.mode = InteractionMode.NONE
        self._enter_phase(EncounterPhase.EXECUTING_TURN)
        self._finish_turn()
        self._dispatch()

    def _maybe_auto_end(self) -> None:
        turn = self.state.player_turn
        if (
            self.config.auto_end_turn
            and self.state.phase == EncounterPhase.PLAYER_TURN
            and turn.action_used
            and turn.movement_used
        ):
            self.end_turn()

    # =========================================================================
    # REPORTING
    # =========================================================================

    def sync_hp(self, combatant_id: str, hp_current: int) -> None:
        """Refresh a friendly combatant's HP from the character store."""
        self.registry.sync_hp(combatant_id, hp_current)

    def estimate_encounter_difficulty(self, definition: EncounterDefinition) -> int:
        return estimate_encounter_difficulty(definition, self.hostile_registry)

    def get_combat_summary(self) -> dict[str, Any]:
        """Get summary of the current encounter."""
        hostiles = self.state.get_hostiles()
        defeated = [h for h in hostiles if not h.is_alive]
        current = self.initiative.current_turn()
        return {
            "encounter_id": self.state.encounter_id,
            "phase": self.state.phase.value,
            "round": self.state.round_counter,
            "current_turn": current.combatant_id if current else None,
            "combatants": [
                {
                    "id": c.combatant_id,
                    "name": c.name,
                    "team": c.team.value,
                    "kind": c.kind.value,
                    "hp": c.hp_current,
                    "hp_max": c.hp_max,
                    "alive": c.is_alive,
                    "position": self.state.positions[c.combatant_id].as_tuple()
                    if c.combatant_id in self.state.positions else None,
                    "status_effects": [e.effect_type for e in c.status_effects],
                }
                for c in self.state.combatants.values()
            ],
            "hostiles_remaining": len(hostiles) - len(defeated),
            "hostiles_defeated": len(defeated),
            "xp_earned": sum(h.xp_value for h in defeated),
            "skipped_groups": list(self.state.skipped_groups),
            "log_entries": len(self.state.log),
        }
