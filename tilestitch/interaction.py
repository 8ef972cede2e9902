"""Drag, resize and stacking of tiles on a composite canvas.

A pointer-down on a tile captures the global pointer stream through
:class:`PointerHub`.  The capture is held in an :class:`~contextlib.ExitStack`
and closed on pointer-up, so listeners never outlive the gesture.  Only one
tile can be dragged or resized at a time.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack, contextmanager
from enum import Enum
from typing import Callable, Iterator, List, Optional, Protocol, Tuple

from . import config, events
from .stitch import Composite
from .tiles import PlacedTile

LOGGER = logging.getLogger("tilestitch.interaction")

PointerHandler = Callable[[float, float], None]


class InteractionState(Enum):
    IDLE = "idle"
    PRESSED = "pressed"
    DRAGGING = "dragging"
    RESIZING = "resizing"


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


TimerFactory = Callable[[int, Callable[[], None]], TimerHandle]


class PointerHub:
    """Window-level pointer listeners with scoped registration."""

    def __init__(self) -> None:
        self._move: List[PointerHandler] = []
        self._up: List[PointerHandler] = []

    @contextmanager
    def capture(self, on_move: PointerHandler, on_up: PointerHandler) -> Iterator[None]:
        self._move.append(on_move)
        self._up.append(on_up)
        try:
            yield
        finally:
            self._move.remove(on_move)
            self._up.remove(on_up)

    @property
    def listener_count(self) -> int:
        return len(self._move) + len(self._up)

    def move(self, x: float, y: float) -> None:
        for handler in list(self._move):
            handler(x, y)

    def release(self, x: float, y: float) -> None:
        for handler in list(self._up):
            handler(x, y)


class CompositeInteractionEngine:
    """State machine handling pointer gestures on one composite."""

    def __init__(
        self,
        composite: Composite,
        hub: Optional[PointerHub] = None,
        timer_factory: Optional[TimerFactory] = None,
        *,
        long_press_ms: int = config.LONG_PRESS_MS,
        drag_threshold: float = config.DRAG_THRESHOLD_PX,
        min_size: float = config.MIN_TILE_SIZE,
        handle_size: float = config.RESIZE_HANDLE_SIZE,
    ):
        self.composite = composite
        self.hub = hub or PointerHub()
        self.timer_factory = timer_factory
        self.long_press_ms = long_press_ms
        self.drag_threshold = drag_threshold
        self.min_size = min_size
        self.handle_size = handle_size

        self.state = InteractionState.IDLE
        self.active_uid: Optional[int] = None
        self._origin: Tuple[float, float] = (0.0, 0.0)
        self._start_rect: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
        self._aspect = 1.0
        self._timer: Optional[TimerHandle] = None
        self._stack: Optional[ExitStack] = None

    # ------------------------------------------------------------------
    # Hit testing
    # ------------------------------------------------------------------
    def hit_test(self, x: float, y: float) -> Tuple[Optional[int], bool]:
        """Return ``(uid, on_handle)`` for the front-most tile under the point."""
        for tile in reversed(self.composite.render_order()):
            tx, ty, w, h = tile.rect()
            if tx <= x <= tx + w and ty <= y <= ty + h:
                on_handle = (x >= tx + w - self.handle_size and y >= ty + h - self.handle_size)
                return tile.uid, on_handle
        return None, False

    def press_at(self, x: float, y: float) -> bool:
        uid, on_handle = self.hit_test(x, y)
        if uid is None:
            return False
        return self.pointer_down(uid, x, y, handle=on_handle)

    # ------------------------------------------------------------------
    # Gesture entry points
    # ------------------------------------------------------------------
    def pointer_down(self, uid: int, x: float, y: float, *, handle: bool = False) -> bool:
        """Start a gesture on tile *uid*; refused while another one is active."""
        if self.state is not InteractionState.IDLE:
            LOGGER.debug("pointer_down on %s ignored: %s in progress", uid, self.state.value)
            return False
        tile = self.composite.placed(uid)
        if tile is None:
            return False

        self.active_uid = uid
        self._origin = (x, y)
        self._start_rect = tile.rect()
        self._aspect = tile.display_width / tile.display_height
        self._stack = ExitStack()
        self._stack.enter_context(self.hub.capture(self._on_move, self._on_up))

        if handle:
            self.state = InteractionState.RESIZING
        else:
            self.state = InteractionState.PRESSED
            if self.timer_factory is not None:
                self._timer = self.timer_factory(self.long_press_ms, self._on_long_press)
        return True

    def cancel(self) -> None:
        """Abort the current gesture without bringing the tile to front."""
        self._finish()

    # ------------------------------------------------------------------
    # Captured pointer stream
    # ------------------------------------------------------------------
    def _on_long_press(self) -> None:
        self._timer = None
        if self.state is InteractionState.PRESSED:
            self.state = InteractionState.DRAGGING
            events.record("grab", {"uid": self.active_uid}, events.INPUT_POINTER)

    def _on_move(self, x: float, y: float) -> None:
        tile = self._active_tile()
        if tile is None:
            self._finish()
            return
        dx = x - self._origin[0]
        dy = y - self._origin[1]
        if self.state is InteractionState.PRESSED:
            if max(abs(dx), abs(dy)) <= self.drag_threshold:
                return
            self._cancel_timer()
            self.state = InteractionState.DRAGGING
        if self.state is InteractionState.DRAGGING:
            self._drag(tile, dx, dy)
        elif self.state is InteractionState.RESIZING:
            self._resize(tile, dx)

    def _on_up(self, x: float, y: float) -> None:
        uid = self.active_uid
        gesture = self.state
        try:
            if uid is not None and self.composite.placed(uid) is not None:
                self.composite.bring_to_front(uid)
                tile = self.composite.placed(uid)
                events.record(
                    "resize_end" if gesture is InteractionState.RESIZING else "drag_end",
                    {"uid": uid, "rect": tile.rect()},
                    events.INPUT_POINTER,
                )
        finally:
            self._finish()

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------
    def _drag(self, tile: PlacedTile, dx: float, dy: float) -> None:
        start_x, start_y, width, height = self._start_rect
        max_x = max(self.composite.canvas_width - width, 0.0)
        max_y = max(self.composite.canvas_height - height, 0.0)
        tile.x = min(max(start_x + dx, 0.0), max_x)
        tile.y = min(max(start_y + dy, 0.0), max_y)

    def _resize(self, tile: PlacedTile, dx: float) -> None:
        tile.display_width, tile.display_height = self.constrained_size(
            tile.x, tile.y, self._start_rect[2] + dx
        )

    def constrained_size(self, x: float, y: float, width: float) -> Tuple[float, float]:
        """Aspect-locked size for a tile anchored at ``(x, y)``."""
        aspect = self._aspect
        width = max(width, 0.0)
        height = width / aspect
        max_width = self.composite.canvas_width - x
        max_height = self.composite.canvas_height - y
        if width > max_width:
            width = max_width
            height = width / aspect
        if height > max_height:
            height = max_height
            width = height * aspect
        if width < self.min_size or height < self.min_size:
            if aspect >= 1:
                height = self.min_size
                width = height * aspect
            else:
                width = self.min_size
                height = width / aspect
        return width, height

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _active_tile(self) -> Optional[PlacedTile]:
        if self.active_uid is None:
            return None
        return self.composite.placed(self.active_uid)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _finish(self) -> None:
        self._cancel_timer()
        stack, self._stack = self._stack, None
        self.state = InteractionState.IDLE
        self.active_uid = None
        if stack is not None:
            stack.close()
