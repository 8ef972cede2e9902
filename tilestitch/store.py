"""Bounded store of decoded image sources.

Tiles only carry a ``source_id``; the bytes behind it live here so the export
path can rasterize a composite later.  The store is an ``OrderedDict`` LRU
guarded by a lock, with factory and override helpers so tests can swap in a
fresh instance.
"""

from __future__ import annotations

from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from threading import RLock
from typing import Callable, Iterator, Optional

from . import config


@dataclass(frozen=True)
class StoredSource:
    data: bytes
    width: int
    height: int
    origin: Optional[str] = None


class SourceStore:
    """A small thread-safe LRU keyed by content id."""

    def __init__(
        self,
        max_size: int = config.MAX_STORE_SIZE,
        cleanup_threshold: float = config.STORE_CLEANUP_THRESHOLD,
    ) -> None:
        self.max_size = max_size
        self.cleanup_threshold = cleanup_threshold
        self._entries: "OrderedDict[str, StoredSource]" = OrderedDict()
        self._lock = RLock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._entries

    def get(self, source_id: str) -> Optional[StoredSource]:
        """Return the entry for *source_id*, marking it most recently used."""
        with self._lock:
            try:
                value = self._entries.pop(source_id)
            except KeyError:
                return None
            self._entries[source_id] = value
            return value

    def put(self, source_id: str, source: StoredSource) -> None:
        with self._lock:
            if source_id in self._entries:
                self._entries.pop(source_id)
            elif len(self._entries) >= self.max_size * self.cleanup_threshold:
                self._cleanup()
            self._entries[source_id] = source

    def _cleanup(self) -> None:
        """Remove the oldest entries until the store is at half capacity."""
        target = max(self.max_size // 2, 1)
        while len(self._entries) > target:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


_store_factory: Callable[[], SourceStore] = SourceStore
_store_instance: Optional[SourceStore] = None
_store_lock = RLock()


def configure_store(factory: Callable[[], SourceStore], *, reset: bool = True) -> None:
    """Set the factory used to lazily build the shared store."""

    global _store_factory, _store_instance
    with _store_lock:
        _store_factory = factory
        if reset:
            _store_instance = None


def get_store() -> SourceStore:
    global _store_instance
    with _store_lock:
        if _store_instance is None:
            _store_instance = _store_factory()
        return _store_instance


@contextmanager
def override_store(store: SourceStore) -> Iterator[SourceStore]:
    """Temporarily replace the shared store within a ``with`` block."""

    global _store_factory, _store_instance
    with _store_lock:
        previous_factory = _store_factory
        previous_instance = _store_instance
        _store_factory = lambda: store  # noqa: E731
        _store_instance = store
    try:
        yield store
    finally:
        with _store_lock:
            _store_factory = previous_factory
            _store_instance = previous_instance


__all__ = [
    "SourceStore",
    "StoredSource",
    "configure_store",
    "get_store",
    "override_store",
]
