"""Event emitters for deploy executions."""

import logging
from abc import ABC, abstractmethod
from typing import Iterable

from bundle_engine.core.events_model import DeployEvent

logger = logging.getLogger(__name__)


ALLOWED_EVENTS = {
    "deploy.fetching",
    "deploy.configuring",
    "deploy.running",
    "deploy.polling",
    "deploy.rolled_out",
    "deploy.completed",
    "deploy.failed",
    "deploy.timed_out",
}


def _check(event: DeployEvent) -> None:
    if event.event_type not in ALLOWED_EVENTS:
        raise ValueError(f"Invalid event type: {event.event_type}")
    if not event.install_name:
        raise ValueError("Event must have install_name")


class EventEmitter(ABC):
    """Abstract event emitter."""

    @abstractmethod
    def emit(self, events: Iterable[DeployEvent]) -> None:
        """Emit one or more events."""
        pass


class LoggingEventEmitter(EventEmitter):
    """Writes every event to the log."""

    def emit(self, events: Iterable[DeployEvent]) -> None:
        for event in events:
            _check(event)
            logger.info(f"[event] {event.event_type} | install={event.install_name} action={event.metadata.get('action')}")


class RecordingEventEmitter(EventEmitter):
    """Keeps events in memory (tests, dry runs)."""

    def __init__(self):
        self.events = []

    def emit(self, events: Iterable[DeployEvent]) -> None:
        for event in events:
            _check(event)
            self.events.append(event)

    @property
    def event_types(self):
        return [event.event_type for event in self.events]


class MultiEventEmitter(EventEmitter):
    """Fan-out to multiple emitters."""

    def __init__(self, emitters: Iterable[EventEmitter]):
        self._emitters = list(emitters)

    def emit(self, events: Iterable[DeployEvent]) -> None:
        events = list(events)
        for emitter in self._emitters:
            emitter.emit(events)


class NullEventEmitter(EventEmitter):
    """No-op emitter (used when events are not needed)."""

    def emit(self, events: Iterable[DeployEvent]) -> None:
        pass
