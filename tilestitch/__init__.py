"""Tile Stitcher: assemble image tiles into a grid or a free-form composite."""

__version__ = "0.1.0"
