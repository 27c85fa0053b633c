from __future__ import annotations

import math
from typing import TYPE_CHECKING, Callable, Iterator, List, Sequence, Set, Tuple

from pygame.math import Vector2

if TYPE_CHECKING:
    from .agent import Agent


_NEIGHBOR_OFFSETS: Tuple[Tuple[int, int], ...] = tuple(
    (dr, dc) for dr in (-1, 0, 1) for dc in (-1, 0, 1)
)


class SpatialGrid:
    """Uniform bucketing of agent indices by position.

    Cells hold indices into the world's agent list, never agent objects. The
    grid is bounded: neighborhoods at the edge are clipped rather than wrapped,
    so agents near the border see fewer candidate cells.
    """

    def __init__(self, width: float, height: float, cell_size: float) -> None:
        self._cell_size = cell_size
        self._rows = int(math.ceil(height / cell_size))
        self._cols = int(math.ceil(width / cell_size))
        self._cells: List[List[Set[int]]] = [[set() for _ in range(self._cols)] for _ in range(self._rows)]

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def cell_size(self) -> float:
        return self._cell_size

    def cell(self, row: int, col: int) -> Set[int]:
        return self._cells[row][col]

    def cell_of(self, position: Vector2) -> Tuple[int, int]:
        row = int(position.y // self._cell_size)
        col = int(position.x // self._cell_size)
        assert 0 <= row < self._rows and 0 <= col < self._cols, f"position {position} outside grid"
        return row, col

    def clear(self) -> None:
        for row in self._cells:
            for bucket in row:
                bucket.clear()

    def build(self, agents: Sequence["Agent"]) -> None:
        self.clear()
        for agent in agents:
            row, col = self.cell_of(agent.position)
            self._cells[row][col].add(agent.index)
            agent.row = row
            agent.col = col

    def reindex(self, agents: Sequence["Agent"]) -> int:
        """Move every agent whose position left its recorded cell; returns the move count."""
        moved = 0
        cells = self._cells
        for agent in agents:
            row, col = self.cell_of(agent.position)
            if row == agent.row and col == agent.col:
                continue
            cells[agent.row][agent.col].discard(agent.index)
            cells[row][col].add(agent.index)
            agent.row = row
            agent.col = col
            moved += 1
        return moved

    def for_each_in_neighborhood(self, row: int, col: int, visit: Callable[[int, int], None]) -> None:
        for cell_row, cell_col in self.neighborhood(row, col):
            visit(cell_row, cell_col)

    def neighborhood(self, row: int, col: int) -> Iterator[Tuple[int, int]]:
        rows = self._rows
        cols = self._cols
        for dr, dc in _NEIGHBOR_OFFSETS:
            cell_row = row + dr
            cell_col = col + dc
            if 0 <= cell_row < rows and 0 <= cell_col < cols:
                yield cell_row, cell_col

    def neighbor_indices(self, row: int, col: int) -> Iterator[int]:
        cells = self._cells
        for cell_row, cell_col in self.neighborhood(row, col):
            yield from cells[cell_row][cell_col]

    def occupancy(self) -> Tuple[int, int]:
        occupied = 0
        largest = 0
        for row in self._cells:
            for bucket in row:
                size = len(bucket)
                if size:
                    occupied += 1
                    if size > largest:
                        largest = size
        return occupied, largest

    def __len__(self) -> int:
        return sum(len(bucket) for row in self._cells for bucket in row)
