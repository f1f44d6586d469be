"""
Segmenter: turns smoothed VAD output into speaker segments.

State machine Idle -> Open -> Idle, driven by frame timestamps (ms):

1. Idle + active frame: open a segment at the frame's timestamp.
2. Open + inactive frame: start a silence deadline (now + SILENCE_THRESHOLD_MS)
   unless one is already pending. Continuous silence must not keep pushing it.
3. Open + active frame before the deadline: cancel the deadline (debounce).
4. Deadline reached (tick): segment length = deadline - start. Emit when
   >= MIN_SEGMENT_DURATION_MS, discard otherwise; back to Idle either way.

Short interjections (< 1.5 s by default) never leave the segmenter, so they never
reach routing.
"""
from __future__ import annotations

import logging
from enum import Enum

from handsfree.audio.vad import VoiceActivity
from handsfree.config import get_settings
from handsfree.speech.models import SpeakerSegment

logger = logging.getLogger(__name__)


class SegmenterState(str, Enum):
    IDLE = "idle"
    OPEN = "open"


class Segmenter:
    """Opens and closes SpeakerSegment values from VoiceActivity frames."""

    def __init__(
        self,
        silence_threshold_ms: int | None = None,
        min_segment_duration_ms: int | None = None,
    ) -> None:
        settings = get_settings()
        self._silence_ms = (
            silence_threshold_ms if silence_threshold_ms is not None else settings.SILENCE_THRESHOLD_MS
        )
        self._min_duration_ms = (
            min_segment_duration_ms
            if min_segment_duration_ms is not None
            else settings.MIN_SEGMENT_DURATION_MS
        )
        self._state = SegmenterState.IDLE
        self._start_time: float | None = None
        self._deadline: float | None = None
        self.emitted_count = 0
        self.discarded_count = 0

    @property
    def state(self) -> SegmenterState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is SegmenterState.OPEN

    @property
    def start_time(self) -> float | None:
        return self._start_time

    @property
    def deadline(self) -> float | None:
        """Pending silence deadline (ms) or None."""
        return self._deadline

    def push(self, activity: VoiceActivity) -> SpeakerSegment | None:
        """
        Feed one frame. Fires an elapsed deadline first, then applies the frame.
        Returns the emitted segment, if any.
        """
        now = activity.timestamp
        emitted = self.tick(now)

        if activity.is_active:
            if self._state is SegmenterState.IDLE:
                self._state = SegmenterState.OPEN
                self._start_time = now
                logger.debug("Segment opened at %.0f", now)
            self._deadline = None
        elif self._state is SegmenterState.OPEN and self._deadline is None:
            self._deadline = now + self._silence_ms
        return emitted

    def tick(self, now: float) -> SpeakerSegment | None:
        """Fire the silence deadline if it has been reached."""
        if self._deadline is None or now < self._deadline:
            return None
        end_time = self._deadline
        start_time = self._start_time if self._start_time is not None else end_time
        self._state = SegmenterState.IDLE
        self._start_time = None
        self._deadline = None

        duration = end_time - start_time
        if duration < self._min_duration_ms:
            self.discarded_count += 1
            logger.debug("Segment discarded: %.0fms < %dms", duration, self._min_duration_ms)
            return None
        self.emitted_count += 1
        return SpeakerSegment(
            speaker_id="unknown",
            start_time=start_time,
            end_time=end_time,
            confidence=0.0,
            is_employee=False,
        )

    def cancel(self) -> None:
        """Drop the open segment and any pending deadline without emitting."""
        self._state = SegmenterState.IDLE
        self._start_time = None
        self._deadline = None
