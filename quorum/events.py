"""Engine event emitter.

Emits structured events for route selection, feedback, experiment
lifecycle and consensus session progress. Listeners observe only: the
routing and consensus algorithms behave identically with or without
them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of engine events."""

    ROUTE_SELECTED = "route_selected"
    ROUTE_FAILED_OVER = "route_failed_over"
    FEEDBACK_RECORDED = "feedback_recorded"
    EXPERIMENT_CREATED = "experiment_created"
    EXPERIMENT_CONCLUDED = "experiment_concluded"
    SESSION_STARTED = "session_started"
    ROUND_STARTED = "round_started"
    RESPONSE_RECEIVED = "response_received"
    PARTICIPANT_DROPPED = "participant_dropped"
    VOTE_CAST = "vote_cast"
    CONSENSUS_CHECKED = "consensus_checked"
    REFINEMENT_RECORDED = "refinement_recorded"
    SESSION_COMPLETED = "session_completed"
    SESSION_ABORTED = "session_aborted"


class EngineEvent(BaseModel):
    """A single engine event."""

    type: EventType = Field(description="Event type")
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix timestamp when the event occurred",
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event payload, shape varies by event type",
    )


EventListener = Callable[[EngineEvent], Any]

# Events that belong to a consensus session and carry ``session_id``
SESSION_EVENTS = frozenset({
    EventType.SESSION_STARTED,
    EventType.ROUND_STARTED,
    EventType.RESPONSE_RECEIVED,
    EventType.PARTICIPANT_DROPPED,
    EventType.VOTE_CAST,
    EventType.CONSENSUS_CHECKED,
    EventType.REFINEMENT_RECORDED,
    EventType.SESSION_COMPLETED,
    EventType.SESSION_ABORTED,
})


class EngineEventEmitter:
    """Broadcasts engine events to registered listeners.

    Listeners can be sync or async callables and may subscribe to a
    subset of event types. The most recent ``history_size`` events are
    kept for inspection; ``history_size=0`` keeps none. Components take
    the emitter as an optional dependency and skip emission when none
    is given.
    """

    def __init__(self, history_size: int = 1000) -> None:
        self._listeners: list[tuple[EventListener, frozenset[EventType]]] = []
        self._history: deque[EngineEvent] = deque(maxlen=max(0, history_size))

    @property
    def history(self) -> list[EngineEvent]:
        """Retained events, oldest first."""
        return list(self._history)

    def add_listener(self, listener: EventListener, *event_types: EventType) -> None:
        """Register ``listener`` for ``event_types``, or for every event if none given."""
        self._listeners.append((listener, frozenset(event_types)))

    def remove_listener(self, listener: EventListener) -> None:
        self._listeners = [(ln, types) for ln, types in self._listeners if ln is not listener]

    def events(
        self,
        event_type: EventType | None = None,
        session_id: str | None = None,
    ) -> list[EngineEvent]:
        """Retained events filtered by type and consensus session."""
        return [
            e for e in self._history
            if (event_type is None or e.type == event_type)
            and (session_id is None or e.data.get("session_id") == session_id)
        ]

    def session_transcript(self, session_id: str) -> list[EngineEvent]:
        """The retained session-scoped events of one consensus session."""
        return [e for e in self.events(session_id=session_id) if e.type in SESSION_EVENTS]

    async def emit(self, event_type: EventType, **data: Any) -> None:
        """Dispatch an event to every subscribed listener.

        Sync listeners are called directly; async listeners are awaited.
        Listener exceptions are logged but never propagate.
        """
        event = EngineEvent(type=event_type, data=data)
        self._history.append(event)

        for listener, types in list(self._listeners):
            if types and event_type not in types:
                continue
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Event listener error for %s", event_type)


async def emit(emitter: EngineEventEmitter | None, event_type: EventType, **data: Any) -> None:
    """Emit through an optional emitter."""
    if emitter is not None:
        await emitter.emit(event_type, **data)
