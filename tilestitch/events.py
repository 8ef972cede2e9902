"""Event sink used to record user actions.

Engines report what happened (tile added, image pasted, stitch toggled...)
through :func:`record` instead of writing to a global log directly.  The active
sink is installed by a session for its lifetime via :func:`session_sink` and
restored when the session closes, so tests can capture records without
touching logging configuration.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Dict, Iterator, List, Optional, Protocol

INPUT_KEYBOARD = "keyboard"
INPUT_POINTER = "pointer"
INPUT_CLIPBOARD = "clipboard"
INPUT_FILE = "file"
INPUT_PROGRAM = "program"


class EventSink(Protocol):
    """Anything able to receive action records."""

    def record(self, event_type: str, details: Dict[str, Any], input_method: str) -> None:
        ...


class LoggingEventSink:
    """Write every record to the ``tilestitch.events`` logger."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("tilestitch.events")

    def record(self, event_type: str, details: Dict[str, Any], input_method: str) -> None:
        self.logger.info("%s via %s: %s", event_type, input_method, details)


@dataclass
class EventRecord:
    event_type: str
    details: Dict[str, Any]
    input_method: str


@dataclass
class RecordingEventSink:
    """Keep records in memory; handy for tests and status displays."""

    records: List[EventRecord] = field(default_factory=list)

    def record(self, event_type: str, details: Dict[str, Any], input_method: str) -> None:
        self.records.append(EventRecord(event_type, dict(details), input_method))

    def types(self) -> List[str]:
        return [r.event_type for r in self.records]


class _NullSink:
    def record(self, event_type: str, details: Dict[str, Any], input_method: str) -> None:
        return None


_sink_lock = RLock()
_active_sink: EventSink = _NullSink()


def get_sink() -> EventSink:
    """Return the sink installed by the current session."""

    with _sink_lock:
        return _active_sink


def record(event_type: str, details: Optional[Dict[str, Any]] = None,
           input_method: str = INPUT_PROGRAM) -> None:
    """Forward an action record to the active sink."""

    get_sink().record(event_type, details or {}, input_method)


@contextmanager
def session_sink(sink: EventSink) -> Iterator[EventSink]:
    """Install *sink* for the duration of a ``with`` block.

    The previous sink is restored on exit, even when the block raises.
    """

    global _active_sink
    with _sink_lock:
        previous = _active_sink
        _active_sink = sink
    try:
        yield sink
    finally:
        with _sink_lock:
            _active_sink = previous


__all__ = [
    "EventSink",
    "EventRecord",
    "LoggingEventSink",
    "RecordingEventSink",
    "get_sink",
    "record",
    "session_sink",
    "INPUT_KEYBOARD",
    "INPUT_POINTER",
    "INPUT_CLIPBOARD",
    "INPUT_FILE",
    "INPUT_PROGRAM",
]
