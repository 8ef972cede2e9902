"""Qt widgets for Tile Stitcher."""
