"""
Battle grid geometry for Grid Skirmish.

The battlefield is a bounded rectangle of integer cells. Distance is
Chebyshev (king-move): a diagonal step costs the same as an orthogonal one.
The grid holds no occupancy of its own; callers pass the set of occupied
cells, and the CombatantRegistry remains the authority for who stands where.
"""

from dataclasses import dataclass
from typing import Iterable, Optional
import logging

from src.data_models import (
    DEFAULT_GRID_HEIGHT,
    DEFAULT_GRID_WIDTH,
    DEFAULT_MOVEMENT_ALLOWANCE,
    Position,
)

logger = logging.getLogger(__name__)


# Hostiles deploy on the right-hand side of the grid starting at this fraction
HOSTILE_ZONE_START = 0.6

CONTROLLED_DEFAULT_POSITION = Position(1, 2)


def chebyshev_distance(a: Position, b: Position) -> int:
    """Grid distance between two cells; diagonals cost 1."""
    return max(abs(a.x - b.x), abs(a.y - b.y))


@dataclass
class MovementResult:
    """Outcome of a movement validation."""
    success: bool
    reason: str = ""
    distance: int = 0
    old_position: Optional[Position] = None
    new_position: Optional[Position] = None


class BattleGrid:
    """
    A bounded grid of cells.

    Usage:
        grid = BattleGrid(8, 6)
        grid.distance(Position(0, 0), Position(3, 2))  # 3
        result = grid.validate_move(Position(1, 2), Position(4, 4), occupied)
    """

    def __init__(
        self,
        width: int = DEFAULT_GRID_WIDTH,
        height: int = DEFAULT_GRID_HEIGHT,
        movement_allowance: int = DEFAULT_MOVEMENT_ALLOWANCE,
    ):
        if width < 1 or height < 1:
            raise ValueError(f"Grid dimensions must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self.movement_allowance = movement_allowance

    # =========================================================================
    # GEOMETRY
    # =========================================================================

    def is_in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def contains(self, position: Position) -> bool:
        return self.is_in_bounds(position.x, position.y)

    def distance(self, a: Position, b: Position) -> int:
        return chebyshev_distance(a, b)

    def all_cells(self) -> list[Position]:
        """Every cell in row-major order."""
        return [Position(x, y) for y in range(self.height) for x in range(self.width)]

    def cells_within(self, center: Position, radius: int) -> list[Position]:
        """
        Get every in-bounds cell within radius of center (inclusive).

        Used for area-of-effect footprints. Radius 0 is the center cell only.
        """
        cells = []
        for y in range(center.y - radius, center.y + radius + 1):
            for x in range(center.x - radius, center.x + radius + 1):
                if self.is_in_bounds(x, y):
                    cells.append(Position(x, y))
        return cells

    # =========================================================================
    # MOVEMENT
    # =========================================================================

    def validate_move(
        self,
        origin: Position,
        destination: Position,
        occupied: Iterable[Position],
        allowance: Optional[int] = None,
    ) -> MovementResult:
        """
        Check whether a combatant at origin may move to destination.

        Args:
            origin: The mover's current cell
            destination: Requested cell
            occupied: Cells held by living combatants (the mover's own cell
                may be included; it is ignored)
            allowance: Movement allowance override (default: grid allowance)

        Returns:
            MovementResult describing success or the first failed check
        """
        allowance = self.movement_allowance if allowance is None else allowance
        dist = self.distance(origin, destination)

        if not self.contains(destination):
            return MovementResult(False, f"{destination} is outside the grid", dist, origin, destination)

        if destination == origin:
            return MovementResult(False, "Already at that position", 0, origin, destination)

        if destination in set(occupied):
            return MovementResult(False, f"{destination} is occupied", dist, origin, destination)

        if dist > allowance:
            return MovementResult(
                False,
                f"{destination} is {dist} cells away (allowance {allowance})",
                dist,
                origin,
                destination,
            )

        return MovementResult(True, "", dist, origin, destination)

    def reachable_cells(
        self, origin: Position, occupied: Iterable[Position], allowance: Optional[int] = None
    ) -> list[Position]:
        """Every free cell a combatant at origin could move to this turn."""
        allowance = self.movement_allowance if allowance is None else allowance
        blocked = set(occupied)
        return [
            cell
            for cell in self.cells_within(origin, allowance)
            if cell != origin and cell not in blocked
        ]

    # =========================================================================
    # DEFAULT PLACEMENT
    # =========================================================================

    def default_controlled_position(self) -> Position:
        return CONTROLLED_DEFAULT_POSITION

    def default_ally_position(self, index: int) -> Position:
        """Allies line up along the left edge below the top row."""
        return Position(0, index + 1)

    def default_hostile_positions(self, count: int) -> list[Position]:
        """
        Spread hostiles across the right-hand side of the grid.

        A lone hostile stands in the middle of the hostile zone. Larger groups
        fill columns left to right, rows clamped away from the top and bottom
        edges.
        """
        start_x = int(self.width * HOSTILE_ZONE_START)
        available_width = self.width - start_x

        if count == 1:
            return [Position(start_x + available_width // 2, self.height // 2)]

        positions = []
        for index in range(count):
            col = index % available_width
            row = index // available_width
            y = max(1, min(self.height - 2, row + 1))
            positions.append(Position(start_x + col, y))
        return positions

    def nearest_free_cell(self, preferred: Position, occupied: Iterable[Position]) -> Optional[Position]:
        """
        Find the free in-bounds cell closest to preferred.

        Ties are broken by row-major scan order. Returns None when the grid is
        full.
        """
        blocked = set(occupied)
        if self.contains(preferred) and preferred not in blocked:
            return preferred

        best: Optional[Position] = None
        best_distance = 0
        for cell in self.all_cells():
            if cell in blocked:
                continue
            dist = self.distance(preferred, cell)
            if best is None or dist < best_distance:
                best = cell
                best_distance = dist

        if best is not None:
            logger.debug(f"Cell {preferred} unavailable, placing at {best}")
        return best

    def __repr__(self) -> str:
        return f"BattleGrid({self.width}x{self.height}, allowance={self.movement_allowance})"
