"""Grid layout for the unstitched tile collection.

The engine arranges a flat :class:`~tilestitch.tiles.TileCollection` into rows
and columns in row-major order.  Placements are computed for display only; no
absolute coordinates are written back to the tiles.  Column insertion re-flows
the flat sequence so every row keeps its own left-to-right order.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from . import config, events
from .tiles import Tile, TileCollection


@dataclass(frozen=True)
class GridCell:
    """Display slot produced by :meth:`GridLayoutEngine.placement`."""

    row: int
    column: int
    tile: Tile
    padded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "column": self.column,
            "uid": None if self.padded else self.tile.uid,
            "blank": self.tile.is_blank,
            "width": self.tile.display_width,
            "height": self.tile.display_height,
        }


class GridLayoutEngine:
    """Maintain the row/column shape of a tile collection."""

    def __init__(
        self,
        tiles: TileCollection,
        rows: int = config.DEFAULT_ROWS,
        columns: int = config.DEFAULT_COLUMNS,
        spacing: int = 0,
    ):
        if rows < 0 or columns < 0:
            raise ValueError("Grid dimensions cannot be negative")
        self.tiles = tiles
        self.rows = rows
        self.columns = columns
        self.spacing = spacing

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @property
    def capacity(self) -> int:
        return self.rows * self.columns

    def _pad(self) -> None:
        """Materialize padding blanks so the sequence fills the grid."""
        while len(self.tiles) < self.capacity:
            self.tiles.insert_blank_at(len(self.tiles))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def placement(self) -> List[List[GridCell]]:
        """Return the row-major arrangement, padded with blanks, excess ignored."""
        grid: List[List[GridCell]] = []
        for r in range(self.rows):
            row: List[GridCell] = []
            for c in range(self.columns):
                index = r * self.columns + c
                if index < len(self.tiles):
                    row.append(GridCell(r, c, self.tiles[index]))
                else:
                    row.append(GridCell(r, c, Tile(), padded=True))
            grid.append(row)
        return grid

    def bounds(self) -> tuple:
        """Return the (width, height) needed to show the grid."""
        width = 0.0
        height = 0.0
        for row in self.placement():
            width = max(width, sum(cell.tile.display_width for cell in row)
                        + self.spacing * max(len(row) - 1, 0))
            height += max((cell.tile.display_height for cell in row), default=0)
        height += self.spacing * max(self.rows - 1, 0)
        return width, height

    def add_column(self) -> None:
        """Insert one blank tile at the end of every existing row."""
        if self.rows == 0:
            self.rows = 1
        self._pad()
        # Walk rows bottom-up so earlier insert positions stay valid.
        for r in reversed(range(self.rows)):
            self.tiles.insert_blank_at((r + 1) * self.columns)
        self.columns += 1
        events.record("add_column", {"rows": self.rows, "columns": self.columns})

    def add_row(self) -> None:
        """Append ``columns`` blank tiles as a new last row."""
        if self.columns == 0:
            self.columns = 1
        self._pad()
        for _ in range(self.columns):
            self.tiles.insert_blank_at(self.capacity)
        self.rows += 1
        events.record("add_row", {"rows": self.rows, "columns": self.columns})

    def remove_column(self) -> bool:
        """Drop the last tile of every row; refused while one column remains."""
        if self.columns <= 1:
            return False
        self._pad()
        for r in reversed(range(self.rows)):
            self.tiles.remove_at(r * self.columns + self.columns - 1)
        self.columns -= 1
        events.record("remove_column", {"rows": self.rows, "columns": self.columns})
        return True

    def remove_row(self) -> bool:
        """Drop the last row; refused while one row remains."""
        if self.rows <= 1:
            return False
        self._pad()
        start = (self.rows - 1) * self.columns
        for index in reversed(range(start, start + self.columns)):
            self.tiles.remove_at(index)
        self.rows -= 1
        events.record("remove_row", {"rows": self.rows, "columns": self.columns})
        return True

    def refit(self, count: Optional[int] = None) -> None:
        """Resynchronize the shape after tiles were removed individually.

        A single row tracks the tile count exactly; taller grids keep their
        column count and drop rows that no longer hold any tile.
        """
        count = len(self.tiles) if count is None else count
        if count == 0:
            self.rows = 0
            self.columns = 0
        elif self.rows <= 1:
            self.rows = 1
            self.columns = count
        else:
            self.rows = max(1, math.ceil(count / max(self.columns, 1)))

    def to_json(self) -> str:
        layout = {
            "rows": self.rows,
            "columns": self.columns,
            "cells": [cell.to_dict() for row in self.placement() for cell in row],
        }
        return json.dumps(layout, separators=(",", ":"))
