"""
Session event channel.

One typed channel per session replaces ad-hoc callbacks: components push
SessionEvent values tagged with an EventType, the WebSocket sender (or a test)
consumes them. emit() never blocks the audio path; when the queue is full the
oldest event is dropped.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    SPEAKER_SEGMENT = "speaker-segment"
    SPEAKER_CHANGE = "speaker-change"
    STATUS = "status"
    TRANSCRIPT_PARTIAL = "transcript-partial"
    TRANSLATION_ROUTED = "translation-routed"
    TRANSLATION_RECEIVED = "translation-received"
    ERROR = "error"
    SPEECH_START = "speech-start"
    SPEECH_END = "speech-end"
    ENROLLMENT_COMPLETE = "enrollment-complete"
    ENROLLMENT_FAILED = "enrollment-failed"
    SESSION_STATE = "session-state"


@dataclass
class SessionEvent:
    """One event. data must be JSON-serializable."""

    type: EventType
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "session_id": self.session_id,
            "timestamp": self.timestamp,
            **self.data,
        }


class EventChannel:
    """Bounded FIFO of SessionEvent. Producers are synchronous; consumers may await."""

    def __init__(self, session_id: str, maxsize: int = 1000) -> None:
        self._session_id = session_id
        self._queue: asyncio.Queue[SessionEvent] = asyncio.Queue(maxsize=maxsize)
        self._dropped = 0

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def dropped(self) -> int:
        return self._dropped

    def emit(self, event_type: EventType, **data: Any) -> SessionEvent:
        event = SessionEvent(type=event_type, session_id=self._session_id, data=data)
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self._dropped += 1
            logger.warning("Event queue full for session %s; dropped oldest event", self._session_id)
            self._queue.put_nowait(event)
        return event

    async def get(self) -> SessionEvent:
        return await self._queue.get()

    def drain(self) -> list[SessionEvent]:
        """Return and remove all queued events without waiting."""
        out: list[SessionEvent] = []
        while True:
            try:
                out.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return out

    def empty(self) -> bool:
        return self._queue.empty()
