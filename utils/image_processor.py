from pathlib import Path
from typing import Any, Callable, Dict, Union
from dataclasses import dataclass
from io import BytesIO
import hashlib
import logging

from PIL import Image, ImageDraw, ImageOps, UnidentifiedImageError

from .validation import validate_export_path

BLANK_FILL = (229, 231, 235, 255)


@dataclass(slots=True)
class ImageInfo:
    """
    Decoded facts about an image source.

    Attributes:
        width (int): Pixel width after EXIF orientation is applied
        height (int): Pixel height after EXIF orientation is applied
        format (str): Format reported by the decoder (e.g., PNG, JPEG)
    """
    width: int
    height: int
    format: str


class ImageDecodeError(Exception):
    """Raised when image bytes cannot be decoded."""
    pass


def content_id(data: bytes) -> str:
    """Stable content reference for *data*."""
    return hashlib.md5(data).hexdigest()


def probe_image(data: bytes) -> ImageInfo:
    """
    Decode just enough of *data* to learn its oriented dimensions.

    Raises:
        ImageDecodeError: If the bytes are not a readable image
    """
    if not data:
        raise ImageDecodeError("No image data")
    try:
        with Image.open(BytesIO(data)) as img:
            fmt = img.format or ""
            oriented = ImageOps.exif_transpose(img)
            width, height = oriented.size
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Failed to decode image: {e}") from e
    if width <= 0 or height <= 0:
        raise ImageDecodeError(f"Image has no area: {width}x{height}")
    return ImageInfo(width=width, height=height, format=fmt)


class PillowDecoder:
    """Decode primitive backed by Pillow.

    Completes synchronously; callers still go through callbacks so a threaded
    decoder can be dropped in without changing them.
    """

    def decode(
        self,
        data: bytes,
        on_done: Callable[[int, int], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        try:
            info = probe_image(data)
        except ImageDecodeError as e:
            on_error(e)
            return
        on_done(info.width, info.height)


def render_composite(composite, store) -> Image.Image:
    """
    Rasterize a composite back to front.

    Args:
        composite: Stitched composite whose tiles reference ``store`` entries
        store: Mapping-like object with ``get(source_id)`` returning bytes holders

    Returns:
        Image.Image: RGBA raster the size of the canvas
    """
    size = (max(1, round(composite.canvas_width)), max(1, round(composite.canvas_height)))
    canvas = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(canvas)
    for tile in composite.render_order():
        box = (round(tile.x), round(tile.y))
        target = (max(1, round(tile.display_width)), max(1, round(tile.display_height)))
        entry = store.get(tile.source_id) if tile.source_id else None
        if entry is None:
            draw.rectangle([box, (box[0] + target[0] - 1, box[1] + target[1] - 1)], fill=BLANK_FILL)
            continue
        try:
            with Image.open(BytesIO(entry.data)) as img:
                img = ImageOps.exif_transpose(img).convert("RGBA")
                img = img.resize(target, Image.Resampling.LANCZOS)
                canvas.paste(img, box, img)
        except (UnidentifiedImageError, OSError) as e:
            logging.warning(f"Skipping tile {tile.uid} during export: {e}")
    return canvas


def save_raster(image: Image.Image, output_path: Union[str, Path], quality: int = 95) -> Path:
    """Save an exported raster with per-format settings."""
    path = validate_export_path(output_path, {".png", ".jpg", ".jpeg", ".webp"})
    fmt = path.suffix[1:].upper()
    if fmt == 'JPG':
        fmt = 'JPEG'

    save_params: Dict[str, Any] = {'format': fmt}
    if fmt == 'JPEG':
        image = image.convert("RGB")
        save_params.update({
            'quality': quality,
            'optimize': True,
            'progressive': True,
        })
    elif fmt == 'WEBP':
        save_params.update({
            'quality': quality,
            'method': 6,
        })
    elif fmt == 'PNG':
        save_params.update({
            'optimize': True,
            'compress_level': 6,
        })

    image.save(str(path), **save_params)
    return path


def raster_to_png_bytes(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
