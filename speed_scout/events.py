# speed_scout/events.py
"""
Typed lifecycle events and the sinks that receive them.

The scheduler and the page registry never talk to a UI directly; they call
``sink.emit(event)`` on whatever :class:`EventSink` was injected.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Type, TypeVar, Union


@dataclass(frozen=True, slots=True)
class BatchStarted:
    total: int


@dataclass(frozen=True, slots=True)
class BatchProgress:
    current: int
    total: int
    completed: int
    failed: int


@dataclass(frozen=True, slots=True)
class BatchPaused:
    has_processing_url: bool
    timestamp: str


@dataclass(frozen=True, slots=True)
class BatchAborted:
    completed: int
    remaining: int


@dataclass(frozen=True, slots=True)
class BatchCompleted:
    total: int
    completed: int
    failed: int


@dataclass(frozen=True, slots=True)
class AuthAlert:
    """The API key was rejected (HTTP 401/403) while analyzing *url*."""
    url: str
    message: str


@dataclass(frozen=True, slots=True)
class SystemErrorEvent:
    message: str
    details: str = ""


@dataclass(frozen=True, slots=True)
class PageEvent:
    """A page registry mutation: added, removed, renamed, status changed, cleared, imported."""
    action: str
    url: Optional[str] = None
    status: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


BatchEvent = Union[
    BatchStarted, BatchProgress, BatchPaused, BatchAborted, BatchCompleted, AuthAlert, SystemErrorEvent
]
Event = Union[BatchEvent, PageEvent]
E = TypeVar("E")


class EventSink(Protocol):
    def emit(self, event: Event) -> None: ...


class NullSink:
    """Drops every event."""

    def emit(self, event: Event) -> None:
        return None


class EventRecorder:
    """Keeps every event in arrival order; used by tests and the CLI summary."""

    def __init__(self) -> None:
        self.events: List[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, kind: Type[E]) -> List[E]:
        return [e for e in self.events if isinstance(e, kind)]

    def clear(self) -> None:
        self.events.clear()


class CallbackSink:
    """Forwards events to plain callables, optionally filtered by event type."""

    def __init__(self, callback: Callable[[Event], Any], *types: type) -> None:
        self._callback = callback
        self._types = types

    def emit(self, event: Event) -> None:
        if not self._types or isinstance(event, self._types):
            self._callback(event)


class FanOutSink:
    def __init__(self, *sinks: EventSink) -> None:
        self.sinks = list(sinks)

    def emit(self, event: Event) -> None:
        for sink in self.sinks:
            sink.emit(event)


__all__ = [
    "BatchStarted",
    "BatchProgress",
    "BatchPaused",
    "BatchAborted",
    "BatchCompleted",
    "AuthAlert",
    "SystemErrorEvent",
    "PageEvent",
    "BatchEvent",
    "Event",
    "EventSink",
    "NullSink",
    "EventRecorder",
    "CallbackSink",
    "FanOutSink",
]
