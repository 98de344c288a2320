"""Observer infrastructure for models that publish state changes."""

from __future__ import annotations

import logging
import time
from enum import Enum

from pydantic import BaseModel, Field

from shared.constants import (
    EVENT_DOWNLOAD_CANCELLED,
    EVENT_DOWNLOAD_COMPLETED,
    EVENT_DOWNLOAD_FAILED,
    EVENT_DOWNLOAD_PROGRESS,
    EVENT_DOWNLOAD_STARTED,
    EVENT_ERROR_OCCURRED,
    EVENT_ESTIMATE_UPDATED,
    EVENT_SESSION_CHANGED,
    EVENT_STATE_CHANGED,
)

logger = logging.getLogger(__name__)


class WorkflowEvent(str, Enum):
    """Events emitted by the download area workflow."""

    STATE_CHANGED = EVENT_STATE_CHANGED
    SESSION_CHANGED = EVENT_SESSION_CHANGED
    ESTIMATE_UPDATED = EVENT_ESTIMATE_UPDATED
    DOWNLOAD_STARTED = EVENT_DOWNLOAD_STARTED
    DOWNLOAD_PROGRESS = EVENT_DOWNLOAD_PROGRESS
    DOWNLOAD_COMPLETED = EVENT_DOWNLOAD_COMPLETED
    DOWNLOAD_FAILED = EVENT_DOWNLOAD_FAILED
    DOWNLOAD_CANCELLED = EVENT_DOWNLOAD_CANCELLED
    ERROR_OCCURRED = EVENT_ERROR_OCCURRED


class EventData(BaseModel):
    """One notification: what happened, when, and its payload."""

    event: WorkflowEvent
    timestamp: float = Field(default_factory=time.time)
    data: dict[str, object] = Field(default_factory=dict)


class Observer:
    """Receives ``EventData`` from an ``Observable`` it was registered with."""

    def update(self, event_data: EventData) -> None:
        msg = f'{type(self).__name__} does not handle workflow events'
        raise NotImplementedError(msg)


class Observable:
    """Base for objects that broadcast ``WorkflowEvent`` notifications."""

    def __init__(self) -> None:
        self._observers: list[Observer] = []

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def add_observer(self, observer: Observer) -> None:
        if observer in self._observers:
            return
        self._observers.append(observer)
        logger.debug('%s: observer %s registered', type(self).__name__, type(observer).__name__)

    def remove_observer(self, observer: Observer) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            return
        logger.debug('%s: observer %s removed', type(self).__name__, type(observer).__name__)

    def notify_observers(
        self,
        event: WorkflowEvent,
        data: dict[str, object] | None = None,
    ) -> None:
        """
        Deliver ``event`` to every observer registered at call time.

        An observer that raises is logged and skipped; the rest still run.
        """
        payload = EventData(event=event, data=dict(data or {}))
        for observer in tuple(self._observers):
            try:
                observer.update(payload)
            except Exception:
                logger.exception('Observer %s failed on %s', type(observer).__name__, event.value)
