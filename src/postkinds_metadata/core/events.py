"""
Error and debug event sink for provider clients.

Clients report retryable failures, terminal failures, and debug traces as
:class:`ApiEvent` records. The sink decides what to do with them; this package
ships a logging sink (the default) and an in-memory collector.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from logging import LoggerAdapter
from typing import List, Mapping, Optional, Protocol

from .logging import get_logger, log_with_extra


class EventLevel(str, Enum):
    ERROR = "error"
    DEBUG = "debug"


@dataclass(frozen=True, slots=True)
class ApiEvent:
    """Structured record emitted by clients."""

    level: EventLevel
    provider: str
    message: str
    context: Mapping[str, object] = field(default_factory=dict)


class EventSink(Protocol):
    def emit(self, event: ApiEvent) -> None:
        """Accept an event. Must not raise."""


@dataclass(slots=True)
class LoggingEventSink:
    """Forward events to the structured logger."""

    logger: Optional[LoggerAdapter] = None

    def __post_init__(self) -> None:
        if self.logger is None:
            self.logger = get_logger("postkinds_metadata.events")

    def emit(self, event: ApiEvent) -> None:
        level = logging.WARNING if event.level == EventLevel.ERROR else logging.DEBUG
        payload = {"provider": event.provider}
        payload.update({key: value for key, value in event.context.items() if key != "provider"})
        log_with_extra(self.logger, level, event.message, payload)


@dataclass(slots=True)
class MemoryEventSink:
    """Collect events in a list."""

    events: List[ApiEvent] = field(default_factory=list)

    def emit(self, event: ApiEvent) -> None:
        self.events.append(event)

    def errors(self) -> List[ApiEvent]:
        return [event for event in self.events if event.level == EventLevel.ERROR]

    def messages(self) -> List[str]:
        return [event.message for event in self.events]
