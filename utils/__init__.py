"""Utility package for Tile Stitcher."""

from . import image_processor, validation

__all__ = ["image_processor", "validation"]
