# workers.py
"""
Background decoding and timers for the Qt front end.
Defines a generic Worker for QRunnable tasks, a QImageReader based decoder
whose results are delivered back on the GUI thread, and a QTimer handle for
the long-press delay.
"""
import itertools
import logging
from typing import Callable, Dict, Optional, Tuple

from PySide6.QtCore import QBuffer, QByteArray, QIODevice, QObject, QRunnable, QThreadPool, QTimer, Signal, Slot
from PySide6.QtGui import QImageReader

from utils.image_processor import ImageDecodeError


class WorkerSignals(QObject):
    started = Signal()
    finished = Signal()
    error = Signal(str)
    result = Signal(object)


class Worker(QRunnable):
    """Wraps any function to run in a QThreadPool."""
    def __init__(self, fn: Callable, *args, **kwargs):
        super().__init__()
        self.fn = fn
        self.args = args
        self.kwargs = kwargs
        self.signals = WorkerSignals()

    def run(self) -> None:
        try:
            self.signals.started.emit()
            result = self.fn(*self.args, **self.kwargs)
            self.signals.result.emit(result)
        except Exception as e:
            logging.error("Worker error: %s", e)
            self.signals.error.emit(str(e))
        finally:
            self.signals.finished.emit()


def read_image_size(data: bytes) -> Tuple[int, int]:
    """Decode *data* with Qt and return its oriented (width, height)."""
    buffer = QBuffer()
    buffer.setData(QByteArray(data))
    if not buffer.open(QIODevice.ReadOnly):
        raise ImageDecodeError("Unable to open image buffer")
    reader = QImageReader(buffer)
    reader.setAutoTransform(True)
    image = reader.read()
    buffer.close()
    if image.isNull():
        raise ImageDecodeError(f"Failed to decode image: {reader.errorString()}")
    return image.width(), image.height()


class QtImageDecoder(QObject):
    """Decode primitive running QImageReader on the thread pool.

    Completion callbacks run on the thread that owns the decoder, so engines
    are only ever touched from the GUI thread.
    """

    decoded = Signal(int, int, int)
    failed = Signal(int, str)

    def __init__(self, pool: Optional[QThreadPool] = None, parent=None):
        super().__init__(parent)
        self.pool = pool or QThreadPool.globalInstance()
        self._tokens = itertools.count(1)
        self._callbacks: Dict[int, Tuple[Callable[[int, int], None], Callable[[Exception], None]]] = {}
        self.decoded.connect(self._on_decoded)
        self.failed.connect(self._on_failed)

    def decode(self, data: bytes, on_done, on_error) -> None:
        token = next(self._tokens)
        self._callbacks[token] = (on_done, on_error)
        self.pool.start(Worker(self._run, token, bytes(data)))

    @property
    def pending(self) -> int:
        return len(self._callbacks)

    def _run(self, token: int, data: bytes) -> None:
        try:
            width, height = read_image_size(data)
        except ImageDecodeError as e:
            self.failed.emit(token, str(e))
            return
        self.decoded.emit(token, width, height)

    @Slot(int, int, int)
    def _on_decoded(self, token: int, width: int, height: int) -> None:
        callbacks = self._callbacks.pop(token, None)
        if callbacks:
            callbacks[0](width, height)

    @Slot(int, str)
    def _on_failed(self, token: int, message: str) -> None:
        callbacks = self._callbacks.pop(token, None)
        if callbacks:
            callbacks[1](ImageDecodeError(message))


class QtTimerHandle:
    """Single-shot QTimer exposing the ``cancel()`` the engines expect."""
    def __init__(self, msec: int, callback: Callable[[], None], parent=None):
        self.timer = QTimer(parent)
        self.timer.setSingleShot(True)
        self.timer.timeout.connect(callback)
        self.timer.start(msec)

    def cancel(self) -> None:
        self.timer.stop()

    def is_active(self) -> bool:
        return self.timer.isActive()
