"""
Autonomous Turn Executor for Grid Skirmish.

Chooses and carries out the turn of any combatant not under direct control.
Decisions are deterministic given the encounter state:

1. Attack the nearest living opponent that any action can reach, using the
   first action (weapons before spells) that reaches it.
2. If nothing is in reach, step to the free cell within the movement
   allowance that is closest to the nearest opponent, then attack if that
   brought someone into reach.
3. Otherwise pass.

The chosen action is submitted through the same callable the controlled
actor's actions go through, so every kind of combatant shares one
resolution path.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Union
import logging

from src.combat.actions import Action, ActionKind, build_actions
from src.combat.combatant_registry import CombatantRegistry
from src.combat.errors import MissingEntityForTurn
from src.combat.pacing import TurnToken
from src.combat.resolution import ActionResolutionEngine, ResolutionResult
from src.data_models import (
    Combatant,
    EncounterPhase,
    EncounterState,
    LogCategory,
    LogEntry,
    Position,
)
from src.grid.battle_grid import MovementResult

logger = logging.getLogger(__name__)


# (actor, action, targets) -> result
SubmitAction = Callable[[Combatant, Action, Union[list[str], Position, None]], ResolutionResult]
EmitLog = Callable[[list[LogEntry]], None]


@dataclass
class AutonomousDecision:
    """What an autonomous combatant intends to do this turn."""
    action: Optional[Action] = None
    targets: Union[list[str], Position, None] = None
    move_to: Optional[Position] = None
    reason: str = ""


@dataclass
class TurnExecution:
    """Record of one executed autonomous turn."""
    token: TurnToken
    skipped: bool = False
    movement: Optional[MovementResult] = None
    resolution: Optional[ResolutionResult] = None
    log_entries: list[LogEntry] = field(default_factory=list)
    outcome: Optional[EncounterPhase] = None


def movement_message(name: str, distance: int) -> str:
    if distance == 0:
        return f"{name} holds position."
    unit = "cell" if distance == 1 else "cells"
    return f"{name} moves {distance} {unit}."


class AutonomousTurnExecutor:
    """
    Runs turns for allies and hostiles.

    Each turn occurrence runs at most once: a TurnToken that has already
    started is refused, so a trigger firing twice for the same turn cannot
    resolve two actions.
    """

    def __init__(
        self,
        registry: CombatantRegistry,
        engine: ActionResolutionEngine,
        submit: SubmitAction,
        emit: EmitLog,
    ):
        self.registry = registry
        self.engine = engine
        self.submit = submit
        self.emit = emit
        self._started: set[TurnToken] = set()

    def reset(self) -> None:
        """Forget every turn token (used when the encounter is reset)."""
        self._started.clear()

    def has_started(self, token: TurnToken) -> bool:
        return token in self._started

    # =========================================================================
    # DECISION
    # =========================================================================

    def _usable_actions(self, combatant: Combatant) -> list[Action]:
        """Offensive actions the combatant can take right now."""
        usable = []
        for action in build_actions(combatant):
            if action.kind == ActionKind.SPELL:
                if not action.is_offensive:
                    continue
                if combatant.lowest_available_slot(action.level) is None:
                    continue
            usable.append(action)
        return usable

    def _opponents_by_distance(self, combatant: Combatant, origin: Position, state: EncounterState) -> list[Combatant]:
        opponents = self.registry.opponents_of(combatant)
        grid = self.registry.grid
        return sorted(opponents, key=lambda c: grid.distance(origin, state.positions[c.combatant_id]))

    def _choose_attack(
        self, combatant: Combatant, origin: Position, state: EncounterState
    ) -> Optional[AutonomousDecision]:
        """Pick the attack on the nearest reachable opponent from origin."""
        actions = self._usable_actions(combatant)
        if not actions:
            return None

        grid = self.registry.grid
        for target in self._opponents_by_distance(combatant, origin, state):
            target_cell = state.positions[target.combatant_id]
            distance = grid.distance(origin, target_cell)
            for action in actions:
                if distance > action.range:
                    continue
                if action.area_of_effect:
                    return AutonomousDecision(action, target_cell, reason=f"area on {target.combatant_id}")
                targets = [target.combatant_id]
                if action.projectiles > 1:
                    targets = self._extra_targets(combatant, origin, action, target, state)
                return AutonomousDecision(action, targets, reason=f"nearest opponent {target.combatant_id}")
        return None

    def _extra_targets(
        self, combatant: Combatant, origin: Position, action: Action, first: Combatant, state: EncounterState
    ) -> list[str]:
        """Fill a multi-target action with the nearest distinct opponents in range."""
        grid = self.registry.grid
        targets = [first.combatant_id]
        for other in self._opponents_by_distance(combatant, origin, state):
            if len(targets) >= action.projectiles:
                break
            if other.combatant_id in targets:
                continue
            if grid.distance(origin, state.positions[other.combatant_id]) <= action.range:
                targets.append(other.combatant_id)
        return targets

    def _choose_step(self, combatant: Combatant, state: EncounterState) -> Optional[Position]:
        """Free reachable cell closest to the nearest opponent, if it gets closer."""
        origin = state.positions[combatant.combatant_id]
        opponents = self._opponents_by_distance(combatant, origin, state)
        if not opponents:
            return None

        grid = self.registry.grid
        goal = state.positions[opponents[0].combatant_id]
        current = grid.distance(origin, goal)
        cells = grid.reachable_cells(origin, self.registry.occupied_cells(exclude=combatant.combatant_id))
        if not cells:
            return None

        # Closest to the goal, then the shortest step, then row-major order
        best = min(cells, key=lambda c: (grid.distance(c, goal), grid.distance(origin, c), c.y, c.x))
        if grid.distance(best, goal) >= current:
            return None
        return best

    def decide(self, combatant: Combatant, state: EncounterState) -> AutonomousDecision:
        """Work out the combatant's turn without changing anything."""
        origin = state.positions.get(combatant.combatant_id)
        if origin is None:
            return AutonomousDecision(reason="not on the grid")

        attack = self._choose_attack(combatant, origin, state)
        if attack is not None:
            return attack

        step = self._choose_step(combatant, state)
        if step is None:
            return AutonomousDecision(reason="no opponent in reach")

        follow_up = self._choose_attack(combatant, step, state)
        if follow_up is not None:
            follow_up.move_to = step
            return follow_up
        return AutonomousDecision(move_to=step, reason="closing distance")

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def execute_turn(self, token: TurnToken, state: EncounterState) -> Optional[TurnExecution]:
        """
        Carry out one autonomous turn.

        Returns:
            The TurnExecution, or None if this turn occurrence already started

        Raises:
            MissingEntityForTurn: If the token's combatant is not registered
        """
        if token in self._started:
            logger.debug(f"Turn {token} already started; ignoring repeat trigger")
            return None
        self._started.add(token)

        combatant = self.registry.get(token.combatant_id)
        if combatant is None:
            raise MissingEntityForTurn(token.combatant_id)

        execution = TurnExecution(token=token)

        # Dead combatants never act and leave no trace in the log
        if not combatant.is_alive:
            execution.skipped = True
            return execution

        if not combatant.can_act:
            conditions = ", ".join(e.effect_type for e in combatant.status_effects)
            execution.skipped = True
            self._log(execution, f"{combatant.name} is {conditions} and cannot act.", LogCategory.INFO)
            return execution

        decision = self.decide(combatant, state)
        logger.debug(f"{combatant.combatant_id} decides: {decision.reason}")

        if decision.move_to is not None:
            execution.movement = self.registry.move(combatant.combatant_id, decision.move_to)
            if execution.movement.success:
                self._log(
                    execution,
                    movement_message(combatant.name, execution.movement.distance),
                    LogCategory.MOVEMENT,
                )

        if decision.action is not None:
            execution.resolution = self.submit(combatant, decision.action, decision.targets)
        elif decision.move_to is None:
            self._log(execution, f"{combatant.name} finds no one to attack and waits.", LogCategory.INFO)

        execution.outcome = self.registry.evaluate_outcome()
        return execution

    def _log(self, execution: TurnExecution, text: str, category: LogCategory) -> None:
        entry = LogEntry(text, category)
        execution.log_entries.append(entry)
        self.emit([entry])
