# main.py
"""
Entry point and main application window for Tile Stitcher.
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Sequence

from PySide6.QtWidgets import QApplication, QMainWindow

from . import config
from .config import EngineOptions
from .widgets.board import TileBoard

LOGGER_NAME = "tilestitch"


def configure_logging() -> logging.Logger:
    """Configure and return the application logger.

    The handler setup is idempotent to avoid duplicate handlers when the module
    is imported multiple times (e.g., in tests). A rotating file handler limits
    on-disk log growth while mirroring output to stdout.
    """

    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    )

    log_path = Path(os.environ.get("TILESTITCH_LOG", Path.cwd() / "tilestitch.log"))
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=1_048_576,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.propagate = False

    return logger


def options_from_env(environ=None) -> EngineOptions:
    """Build engine options from ``TILESTITCH_*`` environment variables."""
    environ = os.environ if environ is None else environ
    policy = environ.get("TILESTITCH_POLICY", config.STITCH_POLICY_LINEAR)
    return EngineOptions(
        stitch_policy=policy,
        scale_to_fit=environ.get("TILESTITCH_SCALE_TO_FIT", "0") == "1",
        display_policy=environ.get("TILESTITCH_DISPLAY", config.DISPLAY_POLICY_FIT_BOX),
        allow_multiple_blanks=environ.get("TILESTITCH_SINGLE_BLANK", "0") != "1",
        retain_composite_edits=environ.get("TILESTITCH_RETAIN_EDITS", "0") == "1",
    )


class MainWindow(QMainWindow):
    def __init__(self, options: Optional[EngineOptions] = None):
        super().__init__()
        self.setWindowTitle("Tile Stitcher")
        self.board = TileBoard(options or options_from_env(), parent=self)
        self.setCentralWidget(self.board)
        self.resize(1100, 720)
        self.board.setFocus()

    def closeEvent(self, event):
        self.board.session.close()
        super().closeEvent(event)


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging()
    app = QApplication(list(argv) if argv is not None else sys.argv)
    app.setStyle("Fusion")
    window = MainWindow()
    window.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
