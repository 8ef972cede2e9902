"""Two-level keyboard selection: first a tile, then an action on it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from . import events


ACTION_PASTE = "paste"
ACTION_LOAD = "load"
ACTION_BLANK = "blank"
ACTION_DELETE = "delete"
ACTIONS: Tuple[str, ...] = (ACTION_PASTE, ACTION_LOAD, ACTION_BLANK, ACTION_DELETE)

KEY_LEFT = "Left"
KEY_RIGHT = "Right"
KEY_UP = "Up"
KEY_DOWN = "Down"
KEY_ENTER = "Enter"
KEY_SPACE = "Space"
KEY_DELETE = "Delete"


@dataclass(frozen=True)
class KeyInput:
    """A key press as delivered by the host; ``ctrl`` also covers Cmd."""

    key: str
    ctrl: bool = False
    shift: bool = False
    meta: bool = False

    @property
    def command(self) -> bool:
        return self.ctrl or self.meta


@dataclass
class SelectionState:
    tile_index: Optional[int] = None
    action: Optional[str] = None


class SelectionCommands(Protocol):
    """Operations the controller dispatches to."""

    @property
    def tile_count(self) -> int:
        ...

    @property
    def is_stitched(self) -> bool:
        ...

    def paste(self, index: int) -> None:
        ...

    def open_upload(self, index: int) -> None:
        ...

    def keep_blank(self, index: int) -> None:
        ...

    def delete(self, index: int) -> None:
        ...

    def add_tile(self) -> None:
        ...

    def toggle_stitch(self) -> None:
        ...


class SelectionController:
    """Map key input onto the tile/action selection state."""

    def __init__(self, commands: SelectionCommands):
        self.commands = commands
        self.state = SelectionState()

    @property
    def tile_index(self) -> Optional[int]:
        return self.state.tile_index

    @property
    def action(self) -> Optional[str]:
        return self.state.action

    def reset(self) -> None:
        self.state = SelectionState()

    def select(self, index: Optional[int]) -> None:
        """Pointer selection of a tile."""
        if index is not None and not 0 <= index < self.commands.tile_count:
            raise IndexError(f"Tile index {index} out of range")
        self.state = SelectionState(tile_index=index)

    def handle_key(self, key: KeyInput) -> bool:
        """Process one key press; return True when it was consumed."""
        if key.command:
            return self._handle_shortcut(key)
        if key.key in (KEY_LEFT, KEY_RIGHT):
            self._move(1 if key.key == KEY_RIGHT else -1)
        elif key.key in (KEY_UP, KEY_DOWN):
            self._cycle(1 if key.key == KEY_DOWN else -1)
        elif key.key in (KEY_ENTER, KEY_SPACE):
            self._commit()
        elif key.key == KEY_DELETE:
            self._delete()
        else:
            return False
        return True

    # ------------------------------------------------------------------
    # Axes
    # ------------------------------------------------------------------
    def _move(self, step: int) -> None:
        count = self.commands.tile_count
        if count == 0:
            return
        current = self.state.tile_index
        if current is None:
            index = 0
        else:
            index = min(max(current + step, 0), count - 1)
        self.state = SelectionState(tile_index=index)

    def _cycle(self, step: int) -> None:
        if self.state.tile_index is None:
            return
        if self.state.action is None:
            position = 0 if step > 0 else len(ACTIONS) - 1
        else:
            position = (ACTIONS.index(self.state.action) + step) % len(ACTIONS)
        self.state.action = ACTIONS[position]

    def _commit(self) -> None:
        index = self.state.tile_index
        if index is None:
            return
        action = self.state.action
        if action is None:
            if index == self.commands.tile_count - 1 and not self.commands.is_stitched:
                self.commands.add_tile()
            return
        self.state.action = None
        events.record("commit", {"action": action, "index": index}, events.INPUT_KEYBOARD)
        if action == ACTION_PASTE:
            self.commands.paste(index)
        elif action == ACTION_LOAD:
            self.commands.open_upload(index)
        elif action == ACTION_BLANK:
            self.commands.keep_blank(index)
        elif action == ACTION_DELETE:
            self.commands.delete(index)

    def _delete(self) -> None:
        if self.state.tile_index is not None:
            self.commands.delete(self.state.tile_index)

    def _handle_shortcut(self, key: KeyInput) -> bool:
        index = self.state.tile_index if self.state.tile_index is not None else 0
        name = key.key.upper()
        if name == "V" and not key.shift:
            self.commands.paste(index)
        elif name == "U" and key.shift:
            self.commands.open_upload(index)
        elif name == "A" and key.shift:
            self.commands.add_tile()
        elif name == "I" and key.shift:
            self.commands.toggle_stitch()
        else:
            return False
        return True

    def describe(self) -> str:
        """Status line for the current selection."""
        if self.state.tile_index is None:
            return ""
        text = f"Tile {self.state.tile_index + 1} selected."
        if self.state.action:
            text += f" Action: {self.state.action}."
        else:
            text += " You can paste an image here."
        return text
