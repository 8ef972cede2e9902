"""Export requests for a stitched composite."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from PIL import Image

from utils.image_processor import raster_to_png_bytes, render_composite, save_raster

from . import config
from .stitch import Composite, InvalidCanvasStateError
from .store import SourceStore

TARGET_DOWNLOAD = "download"
TARGET_CLIPBOARD = "clipboard"


@dataclass(frozen=True)
class ExportRequest:
    """Backing raster plus where the host should put it."""

    raster: Image.Image
    filename: str
    target: str = TARGET_DOWNLOAD

    def png_bytes(self) -> bytes:
        return raster_to_png_bytes(self.raster)

    def save(self, directory: Union[str, Path], quality: int = config.QUALITY_DEFAULT) -> Path:
        return save_raster(self.raster, Path(directory) / self.filename, quality=quality)


def build_export_request(
    composite: Composite,
    store: SourceStore,
    filename: str = config.DEFAULT_EXPORT_NAME,
    target: str = TARGET_DOWNLOAD,
) -> ExportRequest:
    if target not in (TARGET_DOWNLOAD, TARGET_CLIPBOARD):
        raise ValueError(f"Unknown export target: {target}")
    if not composite.has_area:
        raise InvalidCanvasStateError("Cannot export a zero-area composite")
    return ExportRequest(render_composite(composite, store), filename, target)
