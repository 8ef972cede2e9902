"""Turning pasted or uploaded image bytes into tile content.

Decoding is asynchronous from the engine's point of view: :meth:`ImageIngestor.ingest`
issues a :class:`DecodeRequest` bound to the target tile's identity and to the
collection it lives in; the decoder later calls back with the image size or
an error.  If the tile was removed from that collection meanwhile the result
is dropped.  Requests for the same tile are not coalesced, the last completion
wins.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, Tuple, Union

from utils.image_processor import ImageDecodeError, PillowDecoder, content_id
from utils.validation import validate_upload_path

from . import config, events
from .config import EngineOptions
from .store import SourceStore, StoredSource, get_store
from .tiles import Tile, TileCollection

LOGGER = logging.getLogger("tilestitch.ingest")

_request_ids = itertools.count(1)


class Decoder(Protocol):
    def decode(
        self,
        data: bytes,
        on_done: Callable[[int, int], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        ...


@dataclass(frozen=True)
class ImageSource:
    """Raw bytes handed over by the clipboard, file picker or a drop."""

    data: bytes
    origin: Optional[str] = None
    input_method: str = events.INPUT_FILE


@dataclass(frozen=True)
class ClipboardItem:
    mime_type: str
    data: bytes

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


@dataclass
class DecodeRequest:
    """One decode in flight, bound to the collection it was issued against."""

    target_uid: int
    source: ImageSource
    tiles: TileCollection = field(repr=False, compare=False)
    request_id: int = field(default_factory=lambda: next(_request_ids))
    outcome: Optional[str] = None  # "applied", "discarded" or "failed"


@dataclass(frozen=True)
class IngestionFailure:
    target_uid: Optional[int]
    origin: Optional[str]
    reason: str


def fit_box_size(width: int, height: int) -> Tuple[float, float]:
    """Fit an image into the 300x225 tile box keeping its aspect ratio."""
    aspect = width / height
    if aspect > config.FIT_BOX_ASPECT:
        return float(config.BLANK_TILE_WIDTH), config.BLANK_TILE_WIDTH / aspect
    return config.BLANK_TILE_HEIGHT * aspect, float(config.BLANK_TILE_HEIGHT)


class ImageIngestor:
    """Normalize image sources into tiles of the bound collection."""

    def __init__(
        self,
        tiles: TileCollection,
        decoder: Optional[Decoder] = None,
        *,
        store: Optional[SourceStore] = None,
        options: Optional[EngineOptions] = None,
        on_applied: Optional[Callable[[Tile], None]] = None,
        on_failure: Optional[Callable[[IngestionFailure], None]] = None,
    ):
        self.tiles = tiles
        self.decoder = decoder or PillowDecoder()
        self.store = store or get_store()
        self.options = options or EngineOptions()
        self.on_applied = on_applied
        self.on_failure = on_failure
        self.failures: List[IngestionFailure] = []

    def display_size(self, width: int, height: int) -> Tuple[float, float]:
        if self.options.display_policy == config.DISPLAY_POLICY_INTRINSIC:
            return float(width), float(height)
        return fit_box_size(width, height)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def ingest(self, index: int, source: ImageSource) -> DecodeRequest:
        """Start decoding *source* into the tile at *index*."""
        tile = self.tiles[index]
        request = DecodeRequest(target_uid=tile.uid, source=source, tiles=self.tiles)
        LOGGER.debug("Decode %d issued for tile %d", request.request_id, tile.uid)
        self.decoder.decode(
            source.data,
            lambda w, h: self._complete(request, w, h),
            lambda exc: self._fail(request, exc),
        )
        return request

    def paste(self, index: int, items: Sequence[ClipboardItem]) -> Optional[DecodeRequest]:
        """Ingest the first image item of a clipboard read, if there is one."""
        item = next((i for i in items if i.is_image), None)
        if item is None:
            LOGGER.debug("Paste ignored: clipboard holds no image")
            return None
        return self.ingest(index, ImageSource(item.data, None, events.INPUT_CLIPBOARD))

    def load(self, index: int, path: Union[str, Path]) -> Optional[DecodeRequest]:
        """Ingest an image file chosen through the upload dialog or a drop."""
        try:
            safe_path = validate_upload_path(path, config.SUPPORTED_IMAGE_FORMATS)
            data = safe_path.read_bytes()
        except (ValueError, OSError) as exc:
            target = self.tiles[index].uid if 0 <= index < len(self.tiles) else None
            self._report(IngestionFailure(target, str(path), str(exc)))
            return None
        return self.ingest(index, ImageSource(data, str(safe_path), events.INPUT_FILE))

    def keep_blank(self, index: int) -> Tile:
        """Reset tile *index* to blank; composite positions are preserved."""
        tile = self.tiles[index]
        tile.reset_to_blank()
        self.tiles.touch(tile)
        events.record("keep_blank", {"uid": tile.uid})
        return tile

    def delete_source(self, index: int) -> Tile:
        tile = self.tiles.remove_at(index)
        events.record("delete", {"uid": tile.uid})
        return tile

    # ------------------------------------------------------------------
    # Decoder callbacks
    # ------------------------------------------------------------------
    def _complete(self, request: DecodeRequest, width: int, height: int) -> bool:
        # Rebinding the ingestor must not redirect results already in flight.
        tile = request.tiles.find(request.target_uid)
        if tile is None:
            request.outcome = "discarded"
            LOGGER.debug("Decode %d discarded: tile %d is gone",
                         request.request_id, request.target_uid)
            return False

        source_id = content_id(request.source.data)
        self.store.put(source_id, StoredSource(request.source.data, width, height, request.source.origin))
        tile.source_id = source_id
        tile.intrinsic_width = width
        tile.intrinsic_height = height
        tile.display_width, tile.display_height = self.display_size(width, height)
        request.outcome = "applied"

        request.tiles.touch(tile)
        if self.on_applied is not None:
            self.on_applied(tile)
        LOGGER.info("Tile %d: %dx%d image set.", tile.uid, width, height)
        events.record(
            "ingest",
            {"uid": tile.uid, "size": (width, height), "origin": request.source.origin},
            request.source.input_method,
        )
        return True

    def _fail(self, request: DecodeRequest, exc: Exception) -> None:
        request.outcome = "failed"
        self._report(IngestionFailure(request.target_uid, request.source.origin, str(exc)))

    def _report(self, failure: IngestionFailure) -> None:
        LOGGER.warning("Ingestion failed for tile %s (%s): %s",
                       failure.target_uid, failure.origin, failure.reason)
        self.failures.append(failure)
        events.record("ingest_failed", {"uid": failure.target_uid, "reason": failure.reason})
        if self.on_failure is not None:
            self.on_failure(failure)


__all__ = [
    "ClipboardItem",
    "DecodeRequest",
    "Decoder",
    "ImageDecodeError",
    "ImageIngestor",
    "ImageSource",
    "IngestionFailure",
    "fit_box_size",
]
