"""Stitching a tile collection into a single composite canvas and back.

Two placement policies are supported and selected through
:class:`~tilestitch.config.EngineOptions`:

``row``
    tiles keep their grid cells; the cell size is the largest tile size.
``linear``
    tiles are laid left to right; an optional scale-to-fit step shrinks every
    tile by the same factor and re-lays them with the scaled widths.

The composite remembers the collection it was built from, which is what
:meth:`StitchEngine.unstitch` hands back.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from . import config, events
from .config import EngineOptions
from .tiles import CHANGE_INSERT, CHANGE_REMOVE, PlacedTile, Tile, TileCollection

LOGGER = logging.getLogger("tilestitch.stitch")


class InvalidCanvasStateError(RuntimeError):
    """Raised when a composite cannot be built or exported."""


@dataclass
class Composite:
    """Stitched view: canvas size, placed tiles and back-to-front order."""

    canvas_width: float
    canvas_height: float
    tiles: TileCollection
    z_order: List[int] = field(default_factory=list)
    source: Optional[TileCollection] = None
    scale: float = 1.0

    def __post_init__(self) -> None:
        if not self.z_order:
            self.z_order = [t.uid for t in self.tiles]
        self.tiles.subscribe(self._on_tiles_changed)

    def _on_tiles_changed(self, kind: str, tile: Tile) -> None:
        if kind == CHANGE_REMOVE and tile.uid in self.z_order:
            self.z_order.remove(tile.uid)
        elif kind == CHANGE_INSERT and tile.uid not in self.z_order:
            self.z_order.append(tile.uid)

    @property
    def has_area(self) -> bool:
        return self.canvas_width > 0 and self.canvas_height > 0

    def placed(self, uid: int) -> Optional[PlacedTile]:
        return self.tiles.find(uid)

    def render_order(self) -> List[PlacedTile]:
        """Placed tiles from back to front."""
        by_uid: Dict[int, PlacedTile] = {t.uid: t for t in self.tiles}
        return [by_uid[uid] for uid in self.z_order if uid in by_uid]

    def bring_to_front(self, uid: int) -> None:
        if uid in self.z_order:
            self.z_order.remove(uid)
            self.z_order.append(uid)

    def clamp(self, tile: PlacedTile, min_size: float = config.MIN_TILE_SIZE) -> None:
        """Pull *tile* back inside the canvas, shrinking it if it cannot fit.

        Shrinking stops at *min_size* on the shorter side, aspect preserved.
        """
        if tile.display_width > self.canvas_width or tile.display_height > self.canvas_height:
            factor = min(self.canvas_width / tile.display_width,
                         self.canvas_height / tile.display_height)
            tile.display_width *= factor
            tile.display_height *= factor
        if tile.display_width < min_size or tile.display_height < min_size:
            aspect = tile.display_width / tile.display_height
            if aspect >= 1:
                tile.display_width, tile.display_height = min_size * aspect, min_size
            else:
                tile.display_width, tile.display_height = min_size, min_size / aspect
        tile.x = max(min(tile.x, self.canvas_width - tile.display_width), 0.0)
        tile.y = max(min(tile.y, self.canvas_height - tile.display_height), 0.0)

    def snapshot(self) -> Dict[str, object]:
        return {
            "canvas_width": self.canvas_width,
            "canvas_height": self.canvas_height,
            "tiles": [t.to_dict() for t in self.render_order()],
            "z_order": list(self.z_order),
        }


class StitchEngine:
    """Convert between a tile collection and a composite."""

    def __init__(self, options: Optional[EngineOptions] = None, columns: int = 1):
        self.options = options or EngineOptions()
        self.columns = columns

    def stitch(self, tiles: TileCollection, columns: Optional[int] = None) -> Composite:
        if len(tiles) == 0:
            raise InvalidCanvasStateError("Cannot stitch an empty collection")
        source = tiles.clone()
        if self.options.stitch_policy == config.STITCH_POLICY_ROW:
            composite = self._stitch_rows(source, columns or self.columns)
        else:
            composite = self._stitch_linear(source)
        if not composite.has_area:
            raise InvalidCanvasStateError("Composite canvas has zero area")
        LOGGER.info(
            "Stitched %d tiles into %.0fx%.0f canvas (%s policy, scale %.3f)",
            len(tiles), composite.canvas_width, composite.canvas_height,
            self.options.stitch_policy, composite.scale,
        )
        events.record("stitch", {
            "tiles": len(tiles),
            "policy": self.options.stitch_policy,
            "canvas": (composite.canvas_width, composite.canvas_height),
        })
        return composite

    def unstitch(self, composite: Composite) -> TileCollection:
        restored = composite.source.clone()
        if self.options.retain_composite_edits:
            self._carry_edits(composite, restored)
        events.record("unstitch", {"tiles": len(restored)})
        return restored

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------
    def _stitch_rows(self, source: TileCollection, columns: int) -> Composite:
        columns = max(1, min(columns, len(source)))
        rows = math.ceil(len(source) / columns)
        cell_width = max(t.display_width for t in source)
        cell_height = max(t.display_height for t in source)
        placed = [
            PlacedTile.from_tile(tile, (i % columns) * cell_width, (i // columns) * cell_height)
            for i, tile in enumerate(source)
        ]
        return Composite(
            canvas_width=columns * cell_width,
            canvas_height=rows * cell_height,
            tiles=TileCollection(placed),
            source=source,
        )

    def _stitch_linear(self, source: TileCollection) -> Composite:
        sizes = [(t.display_width, t.display_height) for t in source]
        scale = 1.0
        if self.options.scale_to_fit:
            scale = self.fit_scale(sum(w for w, _ in sizes), max(h for _, h in sizes))
        placed: List[PlacedTile] = []
        x = 0.0
        for tile, (width, height) in zip(source, sizes):
            item = PlacedTile.from_tile(tile, x, 0.0)
            item.display_width = width * scale
            item.display_height = height * scale
            placed.append(item)
            x += item.display_width
        return Composite(
            canvas_width=x,
            canvas_height=max(t.display_height for t in placed),
            tiles=TileCollection(placed),
            source=source,
            scale=scale,
        )

    def fit_scale(self, canvas_width: float, canvas_height: float) -> float:
        """Uniform factor that fits the canvas into the configured viewport."""
        if canvas_width <= 0 or canvas_height <= 0:
            return 1.0
        viewport_w, viewport_h = self.options.viewport
        return min(viewport_w / canvas_width, viewport_h / canvas_height, 1.0) * self.options.fit_fraction

    @staticmethod
    def _carry_edits(composite: Composite, restored: TileCollection) -> None:
        scale = composite.scale or 1.0
        for index in reversed(range(len(restored))):
            tile = restored[index]
            placed = composite.placed(tile.uid)
            if placed is None:
                restored.remove_at(index)
                continue
            tile.source_id = placed.source_id
            tile.intrinsic_width = placed.intrinsic_width
            tile.intrinsic_height = placed.intrinsic_height
            tile.display_width = placed.display_width / scale
            tile.display_height = placed.display_height / scale
