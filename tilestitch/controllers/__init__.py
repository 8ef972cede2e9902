"""Controller layer for decoupling tile state management from widgets."""

from .session import HostAdapter, TileSession

__all__ = [
    "HostAdapter",
    "TileSession",
]
