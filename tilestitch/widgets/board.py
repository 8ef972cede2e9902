# widgets/board.py
"""
Defines TileBoard: toolbar plus canvas showing the tile grid or the stitched
composite, translating Qt input into TileSession commands.
"""
from typing import Any, Dict, List, Optional, Tuple
import logging

from PySide6.QtCore import QBuffer, QByteArray, QIODevice, Qt, QRectF, Signal
from PySide6.QtGui import QColor, QImage, QPainter, QPen, QPixmap
from PySide6.QtWidgets import (
    QApplication,
    QFileDialog,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QSizePolicy,
    QVBoxLayout,
    QWidget,
)

from utils.image_processor import save_raster

from .. import config
from ..config import EngineOptions
from ..controllers import HostAdapter, TileSession
from ..export import TARGET_CLIPBOARD, ExportRequest
from ..ingest import ClipboardItem
from ..selection import (
    KEY_DELETE,
    KEY_DOWN,
    KEY_ENTER,
    KEY_LEFT,
    KEY_RIGHT,
    KEY_SPACE,
    KEY_UP,
    KeyInput,
)
from ..workers import QtImageDecoder, QtTimerHandle

_KEY_NAMES = {
    Qt.Key_Left: KEY_LEFT,
    Qt.Key_Right: KEY_RIGHT,
    Qt.Key_Up: KEY_UP,
    Qt.Key_Down: KEY_DOWN,
    Qt.Key_Return: KEY_ENTER,
    Qt.Key_Enter: KEY_ENTER,
    Qt.Key_Space: KEY_SPACE,
    Qt.Key_Delete: KEY_DELETE,
}

GRID_SPACING = 16
SELECTED_PEN = QColor(59, 130, 246)
BLANK_BRUSH = QColor(229, 231, 235)


def key_input_from_event(key: int, modifiers) -> Optional[KeyInput]:
    """Translate a Qt key code and modifiers into a KeyInput."""
    name = _KEY_NAMES.get(key)
    if name is None and Qt.Key_A <= key <= Qt.Key_Z:
        name = chr(key)
    if name is None:
        return None
    # Qt reports Cmd as ControlModifier on macOS and the Meta key elsewhere.
    return KeyInput(
        key=name,
        ctrl=bool(modifiers & Qt.ControlModifier),
        shift=bool(modifiers & Qt.ShiftModifier),
        meta=bool(modifiers & Qt.MetaModifier),
    )


def clipboard_items() -> List[ClipboardItem]:
    """Read the system clipboard as image items (PNG encoded)."""
    mime = QApplication.clipboard().mimeData()
    if mime is None or not mime.hasImage():
        return []
    image = QImage(mime.imageData())
    if image.isNull():
        return []
    buffer = QBuffer()
    buffer.open(QIODevice.WriteOnly)
    image.save(buffer, "PNG")
    return [ClipboardItem("image/png", bytes(buffer.data()))]


class TileCanvas(QWidget):
    """Paints the current snapshot and forwards pointer input."""

    def __init__(self, board: "TileBoard"):
        super().__init__(board)
        self.board = board
        self.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Expanding)
        self.setMinimumSize(320, 240)
        self.setAcceptDrops(True)
        self._pixmaps: Dict[str, QPixmap] = {}

    @property
    def session(self) -> TileSession:
        return self.board.session

    def grid_rects(self) -> List[Tuple[int, QRectF]]:
        grid = self.board.snapshot.get("grid")
        if not grid:
            return []
        rects = []
        columns = max(grid["columns"], 1)
        y = 0.0
        row_height = 0.0
        x = 0.0
        for index, tile in enumerate(grid["tiles"]):
            if index and index % columns == 0:
                y += row_height + GRID_SPACING
                x = 0.0
                row_height = 0.0
            rects.append((index, QRectF(x, y, tile["display_width"], tile["display_height"])))
            x += tile["display_width"] + GRID_SPACING
            row_height = max(row_height, tile["display_height"])
        return rects

    def _pixmap(self, source_id: Optional[str]) -> Optional[QPixmap]:
        if not source_id:
            return None
        if source_id not in self._pixmaps:
            entry = self.session.store.get(source_id)
            if entry is None:
                return None
            pixmap = QPixmap()
            if not pixmap.loadFromData(entry.data):
                return None
            self._pixmaps[source_id] = pixmap
        return self._pixmaps[source_id]

    def _draw_tile(self, painter: QPainter, rect: QRectF, source_id: Optional[str], selected: bool) -> None:
        pixmap = self._pixmap(source_id)
        if pixmap is None:
            painter.fillRect(rect, BLANK_BRUSH)
            painter.drawText(rect, Qt.AlignCenter, "+")
        else:
            painter.drawPixmap(rect, pixmap, QRectF(pixmap.rect()))
        if selected:
            painter.setPen(QPen(SELECTED_PEN, 2))
            painter.drawRect(rect.adjusted(1, 1, -1, -1))
            painter.setPen(Qt.black)

    def paintEvent(self, event):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.SmoothPixmapTransform)
        selected = self.board.snapshot.get("selection", {}).get("tile_index")
        composite = self.board.snapshot.get("composite")
        if composite:
            painter.drawRect(QRectF(0, 0, composite["canvas_width"], composite["canvas_height"]))
            uids = [t.uid for t in self.session.tiles]
            selected_uid = uids[selected] if selected is not None and selected < len(uids) else None
            for tile in composite["tiles"]:
                rect = QRectF(tile["x"], tile["y"], tile["display_width"], tile["display_height"])
                self._draw_tile(painter, rect, tile["source_id"], tile["uid"] == selected_uid)
                handle = config.RESIZE_HANDLE_SIZE
                painter.fillRect(QRectF(rect.right() - handle, rect.bottom() - handle, handle, handle),
                                 SELECTED_PEN)
        else:
            tiles = self.board.snapshot.get("grid", {}).get("tiles", [])
            for index, rect in self.grid_rects():
                self._draw_tile(painter, rect, tiles[index]["source_id"], index == selected)
        painter.end()

    def index_at(self, x: float, y: float) -> Optional[int]:
        for index, rect in self.grid_rects():
            if rect.contains(x, y):
                return index
        return None

    def mousePressEvent(self, event):
        if event.button() != Qt.LeftButton:
            return super().mousePressEvent(event)
        pos = event.position()
        if self.session.is_stitched:
            self.session.pointer_down(pos.x(), pos.y())
        else:
            index = self.index_at(pos.x(), pos.y())
            if index is not None:
                self.session.select(index)
        self.board.setFocus()

    # Qt keeps delivering move/release to the pressed widget, which plays the
    # role of the window-level listeners.
    def mouseMoveEvent(self, event):
        pos = event.position()
        self.session.pointer_move(pos.x(), pos.y())

    def mouseReleaseEvent(self, event):
        pos = event.position()
        self.session.pointer_up(pos.x(), pos.y())

    def dragEnterEvent(self, event):
        if event.mimeData().hasUrls():
            event.acceptProposedAction()
        else:
            super().dragEnterEvent(event)

    def dropEvent(self, event):
        paths = [u.toLocalFile() for u in event.mimeData().urls() if u.isLocalFile()]
        if not paths:
            return
        pos = event.position()
        index = self.index_at(pos.x(), pos.y())
        if index is None:
            index = self.session.selection.tile_index or 0
        self.session.drop_file(index, paths[0])
        event.acceptProposedAction()


class TileBoard(QWidget):
    """Toolbar, canvas and status line for one tile session."""

    snapshotChanged = Signal(dict)

    def __init__(self, options: Optional[EngineOptions] = None, decoder=None, parent=None):
        super().__init__(parent)
        self.snapshot: Dict[str, Any] = {}
        self.setFocusPolicy(Qt.StrongFocus)
        self.setAccessibleName("Tile board")

        self._build_ui()
        adapter = HostAdapter(
            read_clipboard=clipboard_items,
            pick_file=self._pick_file,
            focus_add_control=self.add_button.setFocus,
            render=self._render,
            deliver_export=self._deliver_export,
        )
        self.session = TileSession(
            adapter,
            options=options,
            decoder=decoder or QtImageDecoder(parent=self),
            timer_factory=lambda msec, cb: QtTimerHandle(msec, cb, self),
        )
        self._render(self.session.snapshot())

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        bar = QHBoxLayout()
        self.add_button = QPushButton("Add Tile")
        self.add_row_button = QPushButton("Add Row")
        self.remove_column_button = QPushButton("Delete Column")
        self.remove_row_button = QPushButton("Delete Row")
        self.stitch_button = QPushButton("Stitch")
        self.export_button = QPushButton("Export PNG")
        for button in (self.add_button, self.add_row_button, self.remove_column_button,
                       self.remove_row_button, self.stitch_button, self.export_button):
            bar.addWidget(button)
        self.add_button.setToolTip(f"Add Tile ({config.ADD_TILE_SHORTCUT})")
        self.stitch_button.setToolTip(f"Stitch / Unstitch ({config.STITCH_SHORTCUT})")
        bar.addStretch(1)
        layout.addLayout(bar)

        self.canvas = TileCanvas(self)
        self.canvas.setToolTip(
            f"Paste ({config.PASTE_SHORTCUT}) or upload ({config.UPLOAD_SHORTCUT}) into the selected tile"
        )
        layout.addWidget(self.canvas, 1)
        self.status_label = QLabel("")
        layout.addWidget(self.status_label)

        self.add_button.clicked.connect(lambda: self.session.add_tile())
        self.add_row_button.clicked.connect(lambda: self.session.add_row())
        self.remove_column_button.clicked.connect(lambda: self.session.remove_column())
        self.remove_row_button.clicked.connect(lambda: self.session.remove_row())
        self.stitch_button.clicked.connect(lambda: self.session.toggle_stitch())
        self.export_button.clicked.connect(lambda: self.session.request_export())

    def keyPressEvent(self, event):
        key = key_input_from_event(event.key(), event.modifiers())
        if key is not None and self.session.handle_key(key):
            event.accept()
            return
        super().keyPressEvent(event)

    def closeEvent(self, event):
        self.session.close()
        super().closeEvent(event)

    # --- Host adapter callbacks ---
    def _render(self, snapshot: Dict[str, Any]) -> None:
        self.snapshot = snapshot
        stitched = snapshot["mode"] == "stitched"
        self.stitch_button.setText("Unstitch" if stitched else "Stitch")
        self.stitch_button.setEnabled(snapshot["can_stitch"])
        self.export_button.setVisible(stitched)
        self.export_button.setEnabled(snapshot["can_export"])
        for button in (self.add_button, self.add_row_button,
                       self.remove_column_button, self.remove_row_button):
            button.setEnabled(not stitched)
        grid = snapshot.get("grid")
        if grid:
            self.remove_column_button.setEnabled(grid["columns"] > 1)
            self.remove_row_button.setEnabled(grid["rows"] > 1)
        self.status_label.setText(snapshot["status"])
        self.canvas.update()
        self.snapshotChanged.emit(snapshot)

    def _pick_file(self) -> Optional[str]:
        patterns = " ".join(f"*.{ext}" for ext in config.SUPPORTED_IMAGE_FORMATS)
        path, _ = QFileDialog.getOpenFileName(self, "Upload Image", "", f"Images ({patterns})")
        return path or None

    def _deliver_export(self, request: ExportRequest) -> None:
        if request.target == TARGET_CLIPBOARD:
            QApplication.clipboard().setImage(QImage.fromData(QByteArray(request.png_bytes()), "PNG"))
            return
        path, _ = QFileDialog.getSaveFileName(self, "Export Stitched Image", request.filename,
                                              "PNG (*.png);;JPEG (*.jpg *.jpeg);;WEBP (*.webp)")
        if not path:
            return
        try:
            save_raster(request.raster, path)
        except (ValueError, OSError) as e:
            logging.error("Export failed: %s", e)
