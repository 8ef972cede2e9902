# config.py
"""
Application configuration constants for Tile Stitcher
"""

from dataclasses import dataclass

# Tile defaults
BLANK_TILE_WIDTH = 300
BLANK_TILE_HEIGHT = 225
FIT_BOX_ASPECT = BLANK_TILE_WIDTH / BLANK_TILE_HEIGHT  # 4:3

# Grid defaults
DEFAULT_ROWS = 1
DEFAULT_COLUMNS = 1

# Stitch policies
STITCH_POLICY_ROW = "row"
STITCH_POLICY_LINEAR = "linear"
DEFAULT_FIT_FRACTION = 0.9
DEFAULT_VIEWPORT = (1200, 800)
MIN_STITCH_TILES = 2

# Display policies used on ingestion
DISPLAY_POLICY_FIT_BOX = "fit_box"
DISPLAY_POLICY_INTRINSIC = "intrinsic"

# Composite interaction
LONG_PRESS_MS = 100
DRAG_THRESHOLD_PX = 3
MIN_TILE_SIZE = 20
RESIZE_HANDLE_SIZE = 12

# Source store settings
MAX_STORE_SIZE = 50
STORE_CLEANUP_THRESHOLD = 0.8  # Cleanup when store reaches 80% of max size

# Supported image formats
SUPPORTED_IMAGE_FORMATS = ['png', 'jpg', 'jpeg', 'bmp', 'webp', 'gif', 'tiff']
EXPORT_FORMATS = ['png', 'jpg', 'jpeg', 'webp']
DEFAULT_EXPORT_NAME = "stitched.png"
QUALITY_DEFAULT = 95

# Keyboard shortcuts (Ctrl maps to Cmd on macOS)
PASTE_SHORTCUT = "Ctrl+V"
UPLOAD_SHORTCUT = "Ctrl+Shift+U"
ADD_TILE_SHORTCUT = "Ctrl+Shift+A"
STITCH_SHORTCUT = "Ctrl+Shift+I"


@dataclass(frozen=True)
class EngineOptions:
    """Policy flags shared by the tile engines.

    The flags cover behaviours that differ between historical variants of the
    tool; each one defaults to the most conservative choice.
    """

    allow_multiple_blanks: bool = True
    retain_composite_edits: bool = False
    display_policy: str = DISPLAY_POLICY_FIT_BOX
    stitch_policy: str = STITCH_POLICY_LINEAR
    scale_to_fit: bool = False
    fit_fraction: float = DEFAULT_FIT_FRACTION
    viewport: tuple = DEFAULT_VIEWPORT
    min_stitch_tiles: int = MIN_STITCH_TILES

    def __post_init__(self) -> None:
        if self.display_policy not in (DISPLAY_POLICY_FIT_BOX, DISPLAY_POLICY_INTRINSIC):
            raise ValueError(f"Unknown display policy: {self.display_policy}")
        if self.stitch_policy not in (STITCH_POLICY_ROW, STITCH_POLICY_LINEAR):
            raise ValueError(f"Unknown stitch policy: {self.stitch_policy}")
        if not 0 < self.fit_fraction <= 1:
            raise ValueError("fit_fraction must be in (0, 1]")
