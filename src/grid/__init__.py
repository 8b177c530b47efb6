"""
Battle grid module for Grid Skirmish.

Provides the bounded cell grid, Chebyshev distance and movement validation.
"""

from src.grid.battle_grid import (
    BattleGrid,
    MovementResult,
    chebyshev_distance,
    CONTROLLED_DEFAULT_POSITION,
)

__all__ = [
    "BattleGrid",
    "MovementResult",
    "chebyshev_distance",
    "CONTROLLED_DEFAULT_POSITION",
]
