"""
Grid Skirmish - Main Entry Point

Runs a complete encounter from the command line. The controlled actor is
played by the same heuristic the autonomous combatants use, issuing its
choices through the regular player intents, so a whole fight can be
watched (or replayed from a seed) without a user interface.
"""

import sys
from pathlib import Path

# Add the project root to the Python path for module discovery
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import argparse
import logging
from typing import Any, Optional

from src.combat.encounter_controller import EncounterController
from src.combat.errors import CombatError
from src.combat.event_sink import RecordingEventSink
from src.content_loader.hostile_registry import get_hostile_registry
from src.data_models import (
    CharacterSnapshot,
    CombatConfig,
    EncounterDefinition,
    EncounterPhase,
    HostileGroup,
    Position,
)
from src.observability.run_log import get_run_log


# Configure logging
def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


logger = logging.getLogger(__name__)


# =============================================================================
# DEMO PARTY
# =============================================================================

def create_demo_party(with_ally: bool = True) -> tuple[CharacterSnapshot, list[CharacterSnapshot]]:
    """
    Create the sample controlled actor and ally used by the CLI.

    Returns:
        (controlled snapshot, ally snapshots)
    """
    hero = CharacterSnapshot(
        key="hero",
        name="Aria Vance",
        level=3,
        ability_scores={"STR": 16, "DEX": 14, "CON": 14, "INT": 10, "WIS": 12, "CHA": 11},
        hp_current=28,
        hp_max=28,
        armor_class=16,
        weapons=["longsword", "shortbow"],
    )
    allies = []
    if with_ally:
        allies.append(
            CharacterSnapshot(
                key="mira",
                name="Mira Thornwood",
                level=3,
                ability_scores={"STR": 8, "DEX": 14, "CON": 12, "INT": 17, "WIS": 12, "CHA": 10},
                hp_current=16,
                hp_max=16,
                armor_class=12,
                weapons=["dagger"],
                cantrips=["fire_bolt"],
                prepared_spells=["magic_missile", "burning_hands"],
                spell_slots={1: 4, 2: 2},
                spellcasting_ability="INT",
            )
        )
    return hero, allies


# =============================================================================
# AUTOPILOT
# =============================================================================

def autopilot_player_turn(controller: EncounterController) -> None:
    """Play the controlled actor's turn with the autonomous heuristic."""
    actor = controller.state.get_controlled()
    decision = controller.executor.decide(actor, controller.state)
    logger.debug(f"Autopilot: {decision.reason}")

    try:
        if decision.move_to is not None:
            controller.toggle_movement_mode()
            controller.move_to(decision.move_to)

        if decision.action is not None and controller.state.phase == EncounterPhase.PLAYER_TURN:
            controller.select_action(decision.action.action_id)
            if isinstance(decision.targets, Position):
                controller.select_target(decision.targets)
            else:
                for target_id in decision.targets or []:
                    if controller.state.player_turn.pending_action is None:
                        break
                    controller.select_target(target_id)
    except CombatError as e:
        logger.warning(f"Autopilot intent rejected: {e}")

    if controller.state.phase == EncounterPhase.PLAYER_TURN:
        controller.end_turn()


def run_encounter(controller: EncounterController, max_rounds: int = 20) -> dict[str, Any]:
    """
    Drive an initialized encounter until it ends or hits the round cap.

    Returns:
        The final combat summary
    """
    controller.begin_combat()
    while not controller.state.is_over:
        if controller.state.round_counter > max_rounds:
            logger.warning(f"Round cap of {max_rounds} reached; stopping")
            break
        if controller.state.phase == EncounterPhase.PLAYER_TURN:
            autopilot_player_turn(controller)
            continue
        if controller.pacing.run_until_idle(max_callbacks=1) == 0:
            logger.error(f"Encounter stalled in phase {controller.state.phase.value}")
            break
    return controller.get_combat_summary()


# =============================================================================
# ARGUMENTS
# =============================================================================

def parse_hostiles(value: str) -> list[HostileGroup]:
    """Parse 'goblin:2,orc:1' into hostile groups. A bare type means a count of 1."""
    groups = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        hostile_type, _, count = part.partition(":")
        try:
            groups.append(HostileGroup(type=hostile_type.strip(), count=int(count) if count else 1))
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid hostile count in '{part}'")
    if not groups:
        raise argparse.ArgumentTypeError("At least one hostile group is required")
    return groups


def parse_arguments(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Grid Skirmish - turn-based tactical combat on a grid",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m src.main                              # Two goblins, random seed
  python -m src.main --hostiles goblin:2,orc:1    # Mixed encounter
  python -m src.main --seed 42 --rounds 10        # Reproducible, capped fight
  python -m src.main --list-hostiles              # Show hostile templates
        """
    )

    parser.add_argument(
        "--hostiles",
        type=parse_hostiles,
        default=[HostileGroup("goblin", 2)],
        help="Hostile groups as type:count pairs (default: goblin:2)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="RNG seed for a reproducible encounter",
    )
    parser.add_argument(
        "--width",
        type=int,
        default=8,
        help="Grid width in cells (default: 8)",
    )
    parser.add_argument(
        "--height",
        type=int,
        default=6,
        help="Grid height in cells (default: 6)",
    )
    parser.add_argument(
        "--rounds",
        type=int,
        default=20,
        help="Stop after this many rounds (default: 20)",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=0.0,
        help="Seconds to pause before each autonomous turn (default: 0)",
    )
    parser.add_argument(
        "--solo",
        action="store_true",
        help="Fight without the allied spellcaster",
    )
    parser.add_argument(
        "--list-hostiles",
        action="store_true",
        help="List the available hostile types and exit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def create_config_from_args(args: argparse.Namespace) -> CombatConfig:
    """Create CombatConfig from parsed arguments."""
    return CombatConfig(
        grid_width=args.width,
        grid_height=args.height,
        autonomous_turn_delay=args.delay,
        target_resolution_delay=0.0,
        seed=args.seed,
    )


def list_hostiles() -> None:
    registry = get_hostile_registry()
    print(f"{'TYPE':<12} {'NAME':<12} {'HP':>4} {'AC':>4} {'XP':>6}")
    for template in registry.get_all_templates():
        print(
            f"{template.template_key:<12} {template.name:<12} "
            f"{template.hp_max:>4} {template.armor_class:>4} {template.xp_value:>6}"
        )


def print_summary(controller: EncounterController, summary: dict[str, Any]) -> None:
    print("\n" + "=" * 60)
    print("COMBAT LOG")
    print("=" * 60)
    for entry in controller.state.log:
        print(f"  [{entry.category.value}] {entry.text}")

    print("\n" + "=" * 60)
    print(f"RESULT: {summary['phase'].upper()} after {summary['round']} round(s)")
    print("=" * 60)
    for c in summary["combatants"]:
        status = "alive" if c["alive"] else "down"
        print(f"  {c['name']:<20} {c['hp']:>3}/{c['hp_max']:<3} {status}")
    print(f"  XP earned: {summary['xp_earned']}")
    if summary["skipped_groups"]:
        print(f"  Skipped hostile types: {', '.join(summary['skipped_groups'])}")


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI usage."""
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    if args.list_hostiles:
        list_hostiles()
        return 0

    print("=" * 60)
    print("GRID SKIRMISH v0.1.0")
    print("=" * 60)

    try:
        config = create_config_from_args(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    get_run_log().set_seed(args.seed)
    sink = RecordingEventSink()
    controller = EncounterController(config, sink=sink)
    hero, allies = create_demo_party(with_ally=not args.solo)
    definition = EncounterDefinition(hostiles=args.hostiles)

    print(f"Estimated difficulty: {controller.estimate_encounter_difficulty(definition)}")

    try:
        controller.initialize(definition, hero, allies)
    except CombatError as e:
        logger.error(f"Could not start encounter: {e}")
        return 1

    summary = run_encounter(controller, max_rounds=args.rounds)
    print_summary(controller, summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
