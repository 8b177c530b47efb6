"""
Initiative Scheduler for Grid Skirmish.

Turn order is rolled once per encounter: each combatant rolls 1d20 and adds
its DEX modifier. The order is sorted highest first; ties go to the
controlled actor, then allies, then hostiles, and after that to whoever was
listed first. The order never changes afterwards. Dead combatants keep
their slot and are skipped by the controller.
"""

from typing import Iterable, Optional
import logging

from src.data_models import (
    KIND_PRIORITY,
    Combatant,
    DiceRoller,
    EncounterState,
    LogCategory,
    LogEntry,
    TurnEntry,
    TurnOrder,
)

logger = logging.getLogger(__name__)


class InitiativeScheduler:
    """
    Computes and walks the turn order of one encounter.

    The scheduler reads and writes turn_order, current_turn_index and
    round_counter on the EncounterState it is given.
    """

    def __init__(self, state: EncounterState, dice: DiceRoller):
        self.state = state
        self.dice = dice

    def roll_initiative(
        self,
        controlled: Optional[Combatant],
        allies: Iterable[Combatant] = (),
        hostiles: Iterable[Combatant] = (),
    ) -> TurnOrder:
        """
        Roll initiative for every participant and fix the turn order.

        Args:
            controlled: The controlled actor (None for an all-autonomous fight)
            allies: Allied combatants in listing order
            hostiles: Hostile combatants in listing order

        Returns:
            The immutable turn order
        """
        participants: list[Combatant] = []
        if controlled is not None:
            participants.append(controlled)
        participants.extend(allies)
        participants.extend(hostiles)

        entries = []
        for combatant in participants:
            roll = self.dice.roll_d20(f"initiative: {combatant.name}")
            modifier = combatant.initiative_modifier
            entry = TurnEntry(
                combatant_id=combatant.combatant_id,
                name=combatant.name,
                kind=combatant.kind,
                roll=roll.natural,
                modifier=modifier,
            )
            combatant.initiative = entry.initiative
            entries.append(entry)

        # sorted() is stable, so equal keys keep listing order
        ordered = sorted(entries, key=lambda e: (-e.initiative, KIND_PRIORITY[e.kind]))

        self.state.turn_order = tuple(ordered)
        self.state.current_turn_index = 0
        self.state.round_counter = 1
        logger.debug(f"Turn order: {[e.combatant_id for e in ordered]}")
        return self.state.turn_order

    def current_turn(self) -> Optional[TurnEntry]:
        """The entry whose turn it is, or None for an empty order."""
        if not self.state.turn_order:
            return None
        return self.state.turn_order[self.state.current_turn_index]

    def advance(self) -> Optional[TurnEntry]:
        """
        Move to the next entry, wrapping to the start and incrementing the
        round counter after the last one.

        Returns:
            The new current entry, or None for an empty order
        """
        order = self.state.turn_order
        if not order:
            return None

        next_index = self.state.current_turn_index + 1
        if next_index >= len(order):
            next_index = 0
            self.state.round_counter += 1
            logger.debug(f"Round {self.state.round_counter} begins")
        self.state.current_turn_index = next_index
        return order[next_index]

    def log_entries(self) -> list[LogEntry]:
        """One initiative line per combatant, in turn order."""
        entries = []
        for entry in self.state.turn_order:
            sign = "+" if entry.modifier >= 0 else "-"
            entries.append(
                LogEntry(
                    f"{entry.name} rolls {entry.initiative} for initiative "
                    f"({entry.roll} {sign} {abs(entry.modifier)})",
                    LogCategory.INITIATIVE,
                )
            )
        return entries
