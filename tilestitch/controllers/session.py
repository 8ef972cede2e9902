"""Session controller tying the tile engines together.

:class:`TileSession` owns the tile collection, its grid shape, the optional
stitched composite and the selection state.  Host specifics (clipboard, file
dialog, focus handling, rendering, delivering exports) come in through a
:class:`HostAdapter` made of plain callables, so the session runs the same
under the Qt board, a CLI or tests.

The session installs its event sink process-wide while it is open and
removes it again on :meth:`TileSession.close`.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

from .. import config, events
from ..config import EngineOptions
from ..export import TARGET_DOWNLOAD, ExportRequest, build_export_request
from ..grid_layout import GridLayoutEngine
from ..ingest import ClipboardItem, Decoder, ImageIngestor, IngestionFailure
from ..interaction import CompositeInteractionEngine, PointerHub, TimerFactory
from ..selection import KeyInput, SelectionController
from ..stitch import Composite, StitchEngine
from ..store import SourceStore, get_store
from ..tiles import STRUCTURAL_CHANGES, Tile, TileCollection

LOGGER = logging.getLogger("tilestitch.session")


def _nothing(*_args: Any) -> None:
    return None


@dataclass(frozen=True)
class HostAdapter:
    """Collaborators supplied by the front end."""

    read_clipboard: Callable[[], Sequence[ClipboardItem]] = lambda: ()
    pick_file: Callable[[], Optional[str]] = lambda: None
    focus_add_control: Callable[[], None] = _nothing
    render: Callable[[Dict[str, Any]], None] = _nothing
    deliver_export: Callable[[ExportRequest], None] = _nothing


class TileSession:
    """Manage one editing session independently of UI widgets."""

    def __init__(
        self,
        adapter: Optional[HostAdapter] = None,
        *,
        options: Optional[EngineOptions] = None,
        decoder: Optional[Decoder] = None,
        sink: Optional[events.EventSink] = None,
        store: Optional[SourceStore] = None,
        timer_factory: Optional[TimerFactory] = None,
        initial_tiles: int = 1,
    ) -> None:
        if initial_tiles < 0:
            raise ValueError("initial_tiles cannot be negative")
        self.adapter = adapter or HostAdapter()
        self.options = options or EngineOptions()
        self.sink = sink or events.LoggingEventSink()
        self.store = store or get_store()
        self.timer_factory = timer_factory
        self.hub = PointerHub()

        self.collection = TileCollection(
            [Tile() for _ in range(initial_tiles)],
            allow_multiple_blanks=self.options.allow_multiple_blanks,
        )
        self.grid = GridLayoutEngine(self.collection, rows=1 if initial_tiles else 0,
                                     columns=initial_tiles)
        self.stitcher = StitchEngine(self.options)
        self.composite: Optional[Composite] = None
        self.interaction: Optional[CompositeInteractionEngine] = None
        self.ingestor = ImageIngestor(
            self.collection,
            decoder,
            store=self.store,
            options=self.options,
            on_applied=self._on_ingested,
            on_failure=self._on_ingest_failure,
        )
        self.selection = SelectionController(self)
        self.last_failure: Optional[IngestionFailure] = None

        self._bind(self.collection)
        self._stack = ExitStack()
        self._stack.enter_context(events.session_sink(self.sink))
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def __enter__(self) -> "TileSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Release pointer captures and uninstall the event sink."""
        if self._closed:
            return
        self._closed = True
        if self.interaction is not None:
            self.interaction.cancel()
        self._stack.close()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def is_stitched(self) -> bool:
        return self.composite is not None

    @property
    def tiles(self) -> TileCollection:
        """The collection commands currently act on."""
        return self.composite.tiles if self.composite is not None else self.collection

    @property
    def tile_count(self) -> int:
        return len(self.tiles)

    def can_stitch(self) -> bool:
        return not self.is_stitched and len(self.collection) >= max(self.options.min_stitch_tiles, 1)

    def can_toggle_stitch(self) -> bool:
        return self.is_stitched or self.can_stitch()

    def can_export(self) -> bool:
        return self.composite is not None and self.composite.has_area

    def snapshot(self) -> Dict[str, Any]:
        """Renderable state after the latest mutation."""
        state: Dict[str, Any] = {
            "mode": "stitched" if self.is_stitched else "grid",
            "selection": {
                "tile_index": self.selection.tile_index,
                "action": self.selection.action,
            },
            "status": self.selection.describe(),
            "can_stitch": self.can_toggle_stitch(),
            "can_export": self.can_export(),
        }
        if self.composite is not None:
            state["composite"] = self.composite.snapshot()
        else:
            state["grid"] = {
                "rows": self.grid.rows,
                "columns": self.grid.columns,
                "tiles": self.collection.to_list(),
            }
        return state

    # ------------------------------------------------------------------
    # Selection commands
    # ------------------------------------------------------------------
    def handle_key(self, key: KeyInput) -> bool:
        handled = self.selection.handle_key(key)
        if handled:
            self._emit()
        return handled

    def select(self, index: Optional[int]) -> None:
        self.selection.select(index)
        self._emit()

    def _valid(self, index: int) -> bool:
        return 0 <= index < self.tile_count

    def paste(self, index: int) -> None:
        if not self._valid(index):
            return
        self.ingestor.paste(index, self.adapter.read_clipboard())

    def open_upload(self, index: int) -> None:
        if not self._valid(index):
            return
        path = self.adapter.pick_file()
        if path:
            self.ingestor.load(index, path)

    def drop_file(self, index: int, path: str) -> None:
        if self._valid(index):
            self.ingestor.load(index, path)

    def keep_blank(self, index: int) -> None:
        if self._valid(index):
            self.ingestor.keep_blank(index)

    def delete(self, index: int) -> None:
        if not self._valid(index):
            return
        if self.composite is not None and len(self.composite.tiles) == 1:
            # Removing the last placed tile leaves nothing to stitch.
            self.interaction.cancel()
            self.composite = None
            self.interaction = None
            self.ingestor.tiles = self.collection
            self.collection.restore([])
            self.grid.refit()
            self._focus_add()
            self._emit()
            return
        self.ingestor.delete_source(index)
        if self.composite is None:
            self.grid.refit()

    def add_tile(self) -> None:
        if self.is_stitched:
            LOGGER.debug("add_tile refused while stitched")
            return
        if not self.options.allow_multiple_blanks and self.collection.has_blank():
            LOGGER.debug("add_tile ignored: a blank tile already exists")
            return
        if self.grid.rows > 1:
            self.grid.add_column()
            return
        tile = self.collection.insert_blank()
        if tile is not None:
            self.grid.refit()
            events.record("add_tile", {"uid": tile.uid, "count": len(self.collection)})

    def add_row(self) -> None:
        if not self.is_stitched:
            self.grid.add_row()

    def add_column(self) -> None:
        if not self.is_stitched:
            self.grid.add_column()

    def remove_row(self) -> bool:
        return not self.is_stitched and self.grid.remove_row()

    def remove_column(self) -> bool:
        return not self.is_stitched and self.grid.remove_column()

    def toggle_stitch(self) -> None:
        if self.is_stitched:
            self.unstitch()
        else:
            self.stitch()

    # ------------------------------------------------------------------
    # Stitching
    # ------------------------------------------------------------------
    def stitch(self) -> bool:
        if not self.can_stitch():
            LOGGER.info("Stitch refused: %d tile(s)", len(self.collection))
            events.record("stitch_refused", {"tiles": len(self.collection)})
            return False
        self.composite = self.stitcher.stitch(self.collection, columns=self.grid.columns)
        self.interaction = CompositeInteractionEngine(self.composite, self.hub, self.timer_factory)
        self.ingestor.tiles = self.composite.tiles
        self.composite.tiles.subscribe(self._on_tiles_changed)
        self.selection.reset()
        self._emit()
        return True

    def unstitch(self) -> bool:
        if self.composite is None:
            return False
        self.interaction.cancel()
        restored = self.stitcher.unstitch(self.composite)
        self.composite = None
        self.interaction = None
        self.ingestor.tiles = self.collection
        # Decodes issued before stitching still target this collection.
        self.collection.restore(restored)
        self.grid.refit()
        self.selection.reset()
        self._emit()
        return True

    # ------------------------------------------------------------------
    # Pointer input while stitched
    # ------------------------------------------------------------------
    def pointer_down(self, x: float, y: float) -> bool:
        if self.interaction is None:
            return False
        started = self.interaction.press_at(x, y)
        if started:
            index = self.composite.tiles.index_of(self.interaction.active_uid)
            self.selection.select(index)
            self._emit()
        return started

    def pointer_move(self, x: float, y: float) -> None:
        if self.hub.listener_count:
            self.hub.move(x, y)
            self._emit()

    def pointer_up(self, x: float, y: float) -> None:
        if self.hub.listener_count:
            self.hub.release(x, y)
            self._emit()

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def request_export(
        self,
        filename: str = config.DEFAULT_EXPORT_NAME,
        target: str = TARGET_DOWNLOAD,
    ) -> Optional[ExportRequest]:
        if not self.can_export():
            LOGGER.info("Export refused: nothing stitched")
            return None
        request = build_export_request(self.composite, self.store, filename, target)
        events.record("export", {"filename": filename, "target": target,
                                 "size": request.raster.size})
        self.adapter.deliver_export(request)
        return request

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------
    def _bind(self, tiles: TileCollection) -> None:
        """Make *tiles* the grid collection for the rest of the session."""
        self.collection = tiles
        self.grid.tiles = tiles
        self.ingestor.tiles = tiles
        tiles.on_empty(self._focus_add)
        tiles.subscribe(self._on_tiles_changed)

    def _on_tiles_changed(self, kind: str, tile: Tile) -> None:
        if kind in STRUCTURAL_CHANGES:
            self.selection.reset()
        self._emit()

    def _on_ingested(self, tile: Tile) -> None:
        if self.composite is None:
            return
        if self.composite.placed(tile.uid) is tile:
            self.composite.clamp(tile)
            self._emit()
        elif self.collection.find(tile.uid) is tile:
            # Issued before stitching: show it now and keep it for unstitch.
            pending = self.composite.source.find(tile.uid)
            if pending is not None:
                pending.assign_content(tile)
            placed = self.composite.placed(tile.uid)
            if placed is not None:
                placed.assign_content(tile)
                placed.display_width *= self.composite.scale
                placed.display_height *= self.composite.scale
                self.composite.clamp(placed)
                self._emit()

    def _on_ingest_failure(self, failure: IngestionFailure) -> None:
        self.last_failure = failure
        self._emit()

    def _focus_add(self) -> None:
        events.record("focus_add_control", {})
        self.adapter.focus_add_control()

    def _emit(self) -> None:
        self.adapter.render(self.snapshot())
