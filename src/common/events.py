from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TypeAlias


@dataclass(frozen=True, slots=True)
class StateChangedEvent:
    previous: str
    current: str


@dataclass(frozen=True, slots=True)
class MessageAppendedEvent:
    session_id: str | None
    message_id: str
    role: str
    content: str


@dataclass(frozen=True, slots=True)
class SessionSavedEvent:
    session_id: str
    title: str | None = None


@dataclass(frozen=True, slots=True)
class SessionSwitchedEvent:
    session_id: str | None


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    message: str
    source: str | None = None


Event: TypeAlias = (
    StateChangedEvent
    | MessageAppendedEvent
    | SessionSavedEvent
    | SessionSwitchedEvent
    | ErrorEvent
)
EventCallback: TypeAlias = Callable[[Event], None] | None


class EventEmitter:
    def __init__(self, callback: EventCallback = None):
        self._callback = callback

    def emit(self, event: Event) -> None:
        if self._callback is not None:
            self._callback(event)
