from io import BytesIO

import pytest
from PIL import Image

from tilestitch.stitch import StitchEngine
from tilestitch.store import SourceStore, StoredSource
from tilestitch.tiles import Tile, TileCollection
from utils.image_processor import (
    BLANK_FILL,
    ImageDecodeError,
    PillowDecoder,
    content_id,
    probe_image,
    raster_to_png_bytes,
    render_composite,
    save_raster,
)


def encode(size=(10, 10), color="red", fmt="PNG", **params) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format=fmt, **params)
    return buffer.getvalue()


def test_probe_reports_size_and_format():
    info = probe_image(encode((12, 7)))
    assert (info.width, info.height, info.format) == (12, 7, "PNG")


def test_probe_applies_exif_orientation():
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90 degrees on display
    data = encode((40, 10), fmt="JPEG", exif=exif.tobytes())
    info = probe_image(data)
    assert (info.width, info.height) == (10, 40)


@pytest.mark.parametrize("data", [b"", b"not an image"])
def test_probe_rejects_garbage(data):
    with pytest.raises(ImageDecodeError):
        probe_image(data)


def test_pillow_decoder_reports_through_callbacks():
    done, errors = [], []
    decoder = PillowDecoder()
    decoder.decode(encode((3, 4)), lambda w, h: done.append((w, h)), errors.append)
    decoder.decode(b"junk", lambda w, h: done.append((w, h)), errors.append)
    assert done == [(3, 4)]
    assert len(errors) == 1 and isinstance(errors[0], ImageDecodeError)


def test_content_id_is_stable():
    data = encode()
    assert content_id(data) == content_id(bytes(data))
    assert content_id(data) != content_id(encode(color="blue"))


def test_render_composite_paints_sources_and_blanks():
    data = encode((300, 225), color="blue")
    store = SourceStore()
    source_id = content_id(data)
    store.put(source_id, StoredSource(data, 300, 225))
    tiles = TileCollection([Tile(source_id=source_id, intrinsic_width=300, intrinsic_height=225), Tile()])

    composite = StitchEngine().stitch(tiles)
    raster = render_composite(composite, store)

    assert raster.size == (600, 225)
    assert raster.getpixel((150, 100)) == (0, 0, 255, 255)
    assert raster.getpixel((450, 100)) == BLANK_FILL


def test_render_composite_respects_z_order():
    red, blue = encode(color="red"), encode(color="blue")
    store = SourceStore()
    for data in (red, blue):
        store.put(content_id(data), StoredSource(data, 10, 10))
    tiles = TileCollection([Tile(source_id=content_id(red)), Tile(source_id=content_id(blue))])
    composite = StitchEngine().stitch(tiles)
    first, second = composite.tiles
    second.x = 0
    composite.bring_to_front(first.uid)

    raster = render_composite(composite, store)
    assert raster.getpixel((10, 10)) == (255, 0, 0, 255)


def test_save_raster_formats(tmp_path):
    raster = Image.new("RGBA", (8, 8), (10, 20, 30, 255))
    jpeg = save_raster(raster, tmp_path / "out.jpg", quality=80)
    with Image.open(jpeg) as img:
        assert img.format == "JPEG"
        assert img.mode == "RGB"
    png = save_raster(raster, tmp_path / "out.png")
    with Image.open(png) as img:
        assert img.format == "PNG"


def test_save_raster_rejects_unknown_extension(tmp_path):
    with pytest.raises(ValueError):
        save_raster(Image.new("RGB", (2, 2)), tmp_path / "out.txt")


def test_raster_to_png_bytes_roundtrip():
    raster = Image.new("RGBA", (5, 6))
    assert probe_image(raster_to_png_bytes(raster)).format == "PNG"
