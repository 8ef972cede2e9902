from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from tilestitch.config import EngineOptions
from tilestitch.ingest import ClipboardItem, ImageIngestor, ImageSource, fit_box_size
from tilestitch.store import SourceStore
from tilestitch.tiles import PlacedTile, Tile, TileCollection


def png_bytes(size=(10, 10), color="red") -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format="PNG")
    return buffer.getvalue()


class ManualDecoder:
    """Holds decode requests until the test completes them."""

    def __init__(self):
        self.pending = []

    def decode(self, data, on_done, on_error):
        self.pending.append((data, on_done, on_error))

    def complete(self, index, width, height):
        _, on_done, _ = self.pending[index]
        on_done(width, height)

    def fail(self, index, exc):
        _, _, on_error = self.pending[index]
        on_error(exc)


@pytest.fixture
def tiles():
    return TileCollection([Tile(), Tile()])


@pytest.fixture
def store():
    return SourceStore()


def test_fit_box_policy():
    assert fit_box_size(800, 600) == pytest.approx((300, 225))
    assert fit_box_size(1600, 600) == pytest.approx((300, 112.5))
    assert fit_box_size(300, 600) == pytest.approx((112.5, 225))


def test_upload_sets_tile_from_decoded_image(tiles, store, tmp_path):
    path = tmp_path / "photo.png"
    path.write_bytes(png_bytes((800, 600)))
    ingestor = ImageIngestor(tiles, store=store)

    request = ingestor.load(0, path)

    tile = tiles[0]
    assert request.outcome == "applied"
    assert (tile.intrinsic_width, tile.intrinsic_height) == (800, 600)
    assert (tile.display_width, tile.display_height) == pytest.approx((300, 225))
    assert tile.source_id in store
    assert store.get(tile.source_id).origin == str(path.resolve())


def test_intrinsic_display_policy(tiles, store):
    options = EngineOptions(display_policy="intrinsic")
    ingestor = ImageIngestor(tiles, store=store, options=options)
    ingestor.ingest(1, ImageSource(png_bytes((64, 32))))
    assert (tiles[1].display_width, tiles[1].display_height) == (64, 32)


def test_decode_failure_leaves_tile_unchanged(tiles, store):
    failures = []
    ingestor = ImageIngestor(tiles, store=store, on_failure=failures.append)
    before = tiles[0].content()
    request = ingestor.ingest(0, ImageSource(b"definitely not an image"))
    assert request.outcome == "failed"
    assert tiles[0].content() == before
    assert len(failures) == 1 and failures[0].target_uid == tiles[0].uid


def test_invalid_upload_path_is_reported(tiles, store, tmp_path):
    bad = tmp_path / "notes.txt"
    bad.write_text("hello")
    ingestor = ImageIngestor(tiles, store=store)
    assert ingestor.load(0, bad) is None
    assert ingestor.load(0, tmp_path / "missing.png") is None
    assert len(ingestor.failures) == 2
    assert tiles[0].is_blank


def test_paste_ignores_clipboards_without_images(tiles, store):
    ingestor = ImageIngestor(tiles, store=store)
    assert ingestor.paste(0, []) is None
    assert ingestor.paste(0, [ClipboardItem("text/plain", b"hi")]) is None
    assert tiles[0].is_blank and not ingestor.failures


def test_paste_uses_first_image_item(tiles, store):
    ingestor = ImageIngestor(tiles, store=store)
    items = [ClipboardItem("text/plain", b"x"),
             ClipboardItem("image/png", png_bytes((30, 60))),
             ClipboardItem("image/png", png_bytes((90, 10)))]
    ingestor.paste(1, items)
    assert (tiles[1].intrinsic_width, tiles[1].intrinsic_height) == (30, 60)


def test_completion_for_removed_tile_is_discarded(tiles, store):
    decoder = ManualDecoder()
    ingestor = ImageIngestor(tiles, decoder, store=store)
    request = ingestor.ingest(0, ImageSource(png_bytes()))
    survivor = tiles[1]
    tiles.remove_at(0)

    decoder.complete(0, 10, 10)

    assert request.outcome == "discarded"
    assert survivor.is_blank
    assert not ingestor.failures


def test_completion_follows_tile_after_reorder(tiles, store):
    decoder = ManualDecoder()
    ingestor = ImageIngestor(tiles, decoder, store=store)
    target = tiles[0]
    ingestor.ingest(0, ImageSource(png_bytes()))
    tiles.move_to(0, 1)
    decoder.complete(0, 40, 30)
    assert tiles[1] is target
    assert target.intrinsic_width == 40
    assert tiles[0].is_blank


def test_last_completion_wins(tiles, store):
    decoder = ManualDecoder()
    ingestor = ImageIngestor(tiles, decoder, store=store)
    first = png_bytes((10, 10), "red")
    second = png_bytes((20, 10), "blue")
    ingestor.ingest(0, ImageSource(first))
    ingestor.ingest(0, ImageSource(second))

    decoder.complete(1, 20, 10)
    decoder.complete(0, 10, 10)

    assert tiles[0].intrinsic_width == 10
    assert store.get(tiles[0].source_id).data == first


def test_keep_blank_preserves_composite_position(store):
    placed = TileCollection([PlacedTile(source_id="s", intrinsic_width=4, intrinsic_height=3,
                                        display_width=300, display_height=225, x=80, y=5)])
    ingestor = ImageIngestor(placed, store=store)
    tile = ingestor.keep_blank(0)
    assert tile.is_blank
    assert (tile.display_width, tile.display_height) == (300, 225)
    assert (tile.x, tile.y) == (80, 5)


def test_delete_source_removes_tile(tiles, store):
    ingestor = ImageIngestor(tiles, store=store)
    removed = ingestor.delete_source(0)
    assert len(tiles) == 1
    assert tiles.find(removed.uid) is None


def test_completion_stays_with_the_collection_it_was_issued_for(tiles, store):
    decoder = ManualDecoder()
    ingestor = ImageIngestor(tiles, decoder, store=store)
    ingestor.paste(0, [ClipboardItem("image/png", png_bytes())])

    rebound = tiles.clone()
    ingestor.tiles = rebound
    decoder.complete(0, 640, 480)

    assert tiles[0].intrinsic_width == 640
    assert rebound[0].is_blank
