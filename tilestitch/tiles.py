"""Tile records and the ordered tile collection.

The collection is a pure-Python container so it can be unit tested without a
Qt environment.  Every mutation notifies subscribers with a change kind which
the session uses to invalidate selection and re-render.
"""

from __future__ import annotations

import copy
import itertools
import logging
from dataclasses import dataclass, field, fields
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from . import config

LOGGER = logging.getLogger("tilestitch.tiles")

CHANGE_INSERT = "insert"
CHANGE_REMOVE = "remove"
CHANGE_MOVE = "move"
CHANGE_REPLACE = "replace"
CHANGE_RESET = "reset"
STRUCTURAL_CHANGES = frozenset({CHANGE_INSERT, CHANGE_REMOVE, CHANGE_MOVE, CHANGE_RESET})

ChangeListener = Callable[[str, "Tile"], None]

_uid_counter = itertools.count(1)


def next_uid() -> int:
    return next(_uid_counter)


@dataclass
class Tile:
    """One image slot, blank when ``source_id`` is None."""

    uid: int = field(default_factory=next_uid)
    source_id: Optional[str] = None
    intrinsic_width: Optional[int] = None
    intrinsic_height: Optional[int] = None
    display_width: float = config.BLANK_TILE_WIDTH
    display_height: float = config.BLANK_TILE_HEIGHT

    @property
    def is_blank(self) -> bool:
        return not self.source_id

    @property
    def aspect_ratio(self) -> float:
        if self.intrinsic_width and self.intrinsic_height:
            return self.intrinsic_width / self.intrinsic_height
        return self.display_width / self.display_height

    def reset_to_blank(self) -> None:
        """Drop the image content, leaving any position fields untouched."""
        self.source_id = None
        self.intrinsic_width = None
        self.intrinsic_height = None
        self.display_width = config.BLANK_TILE_WIDTH
        self.display_height = config.BLANK_TILE_HEIGHT

    def assign_content(self, other: "Tile") -> None:
        """Take image and display size from *other*, keeping identity."""
        self.source_id = other.source_id
        self.intrinsic_width = other.intrinsic_width
        self.intrinsic_height = other.intrinsic_height
        self.display_width = other.display_width
        self.display_height = other.display_height

    def content(self) -> Dict[str, object]:
        """Return the tile fields without identity, for comparisons."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "uid"}

    def to_dict(self) -> Dict[str, object]:
        data = {"uid": self.uid}
        data.update(self.content())
        return data


@dataclass
class PlacedTile(Tile):
    """A tile positioned on a composite canvas (top-left anchor)."""

    x: float = 0.0
    y: float = 0.0

    @classmethod
    def from_tile(cls, tile: Tile, x: float, y: float) -> "PlacedTile":
        return cls(
            uid=tile.uid,
            source_id=tile.source_id,
            intrinsic_width=tile.intrinsic_width,
            intrinsic_height=tile.intrinsic_height,
            display_width=tile.display_width,
            display_height=tile.display_height,
            x=x,
            y=y,
        )

    def rect(self) -> tuple:
        return self.x, self.y, self.display_width, self.display_height


class TileCollection:
    """Ordered sequence of tiles; each index owns its record."""

    def __init__(
        self,
        tiles: Optional[List[Tile]] = None,
        *,
        allow_multiple_blanks: bool = True,
    ) -> None:
        self._tiles: List[Tile] = [copy.deepcopy(t) for t in tiles or []]
        self.allow_multiple_blanks = allow_multiple_blanks
        self._listeners: List[ChangeListener] = []
        self._empty_listeners: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------
    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def on_empty(self, listener: Callable[[], None]) -> None:
        """Register a callback fired when removal leaves the collection empty."""
        self._empty_listeners.append(listener)

    def _notify(self, kind: str, tile: Tile) -> None:
        for listener in list(self._listeners):
            listener(kind, tile)

    # ------------------------------------------------------------------
    # Sequence protocol
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._tiles)

    def __iter__(self) -> Iterator[Tile]:
        return iter(self._tiles)

    def __getitem__(self, index: int) -> Tile:
        return self._tiles[index]

    def tiles(self) -> List[Tile]:
        return list(self._tiles)

    def has_blank(self) -> bool:
        return any(t.is_blank for t in self._tiles)

    def find(self, uid: int) -> Optional[Tile]:
        return next((t for t in self._tiles if t.uid == uid), None)

    def index_of(self, uid: int) -> Optional[int]:
        for i, tile in enumerate(self._tiles):
            if tile.uid == uid:
                return i
        return None

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._tiles):
            raise IndexError(f"Tile index {index} out of range (0..{len(self._tiles) - 1})")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def insert_blank(self) -> Optional[Tile]:
        """Append a blank tile.

        Returns None without changing anything when multiple blanks are
        disallowed and one already exists.
        """
        if not self.allow_multiple_blanks and self.has_blank():
            LOGGER.debug("insert_blank ignored: a blank tile already exists")
            return None
        return self.insert_blank_at(len(self._tiles))

    def insert_blank_at(self, index: int) -> Tile:
        if not 0 <= index <= len(self._tiles):
            raise IndexError(f"Insert position {index} out of range")
        tile = Tile()
        self._tiles.insert(index, tile)
        self._notify(CHANGE_INSERT, tile)
        return tile

    def append(self, tile: Tile) -> Tile:
        """Append a copy of *tile* and return the stored record."""
        stored = copy.deepcopy(tile)
        self._tiles.append(stored)
        self._notify(CHANGE_INSERT, stored)
        return stored

    def remove_at(self, index: int) -> Tile:
        self._check_index(index)
        tile = self._tiles.pop(index)
        self._notify(CHANGE_REMOVE, tile)
        if not self._tiles:
            for listener in list(self._empty_listeners):
                listener()
        return tile

    def move_to(self, src: int, dst: int) -> None:
        self._check_index(src)
        self._check_index(dst)
        if src == dst:
            return
        tile = self._tiles.pop(src)
        self._tiles.insert(dst, tile)
        self._notify(CHANGE_MOVE, tile)

    def replace_at(self, index: int, tile: Tile) -> Tile:
        self._check_index(index)
        stored = copy.deepcopy(tile)
        self._tiles[index] = stored
        self._notify(CHANGE_REPLACE, stored)
        return stored

    def touch(self, tile: Tile) -> None:
        """Announce an in-place edit of *tile*."""
        self._notify(CHANGE_REPLACE, tile)

    def restore(self, tiles: Iterable[Tile]) -> None:
        """Replace every record with copies of *tiles*, keeping listeners.

        Listeners get a single reset notification carrying the first record,
        or a blank placeholder when the collection ends up empty.
        """
        self._tiles = [copy.deepcopy(t) for t in tiles]
        self._notify(CHANGE_RESET, self._tiles[0] if self._tiles else Tile())

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def clone(self) -> "TileCollection":
        """Deep copy keeping identities; listeners are not carried over."""
        return TileCollection(self._tiles, allow_multiple_blanks=self.allow_multiple_blanks)

    def contents(self) -> List[Dict[str, object]]:
        return [t.content() for t in self._tiles]

    def to_list(self) -> List[Dict[str, object]]:
        return [t.to_dict() for t in self._tiles]
