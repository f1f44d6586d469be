"""
DuckingCoordinator: lowers synthesized playback while someone speaks.

Pure state machine over a millisecond clock; it never sleeps or schedules callbacks.
Whoever owns it calls tick(now) regularly (the session ticker, every ~10ms) and
forwards VAD transitions through on_vad().

    NORMAL --speech--> DUCKING --fade done--> DUCKED
    DUCKED --speech ends--> (resume deadline = now + RESUME_DELAY_MS)
    deadline reached --> RESUMING --fade done--> NORMAL
    speech before the deadline cancels it; speech while RESUMING ducks again.

The volume before the first duck is remembered and restored on resume.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from handsfree.audio.playback import AudioOutput
from handsfree.config import get_settings

logger = logging.getLogger(__name__)


class DuckingState(str, Enum):
    NORMAL = "normal"
    DUCKING = "ducking"
    DUCKED = "ducked"
    RESUMING = "resuming"


@dataclass
class _Fade:
    start_volume: float
    target_volume: float
    start_time: float
    duration_ms: float

    def value_at(self, now: float) -> float:
        if self.duration_ms <= 0:
            return self.target_volume
        progress = min(1.0, max(0.0, (now - self.start_time) / self.duration_ms))
        return self.start_volume + (self.target_volume - self.start_volume) * progress

    def done_at(self, now: float) -> bool:
        return now - self.start_time >= self.duration_ms


class DuckingCoordinator:
    """Drives an AudioOutput's volume in response to speech activity."""

    def __init__(
        self,
        output: AudioOutput,
        ducking_volume: float | None = None,
        fade_out_ms: int | None = None,
        fade_in_ms: int | None = None,
        resume_delay_ms: int | None = None,
        enabled: bool | None = None,
    ) -> None:
        settings = get_settings()
        self._output = output
        self._ducking_volume = ducking_volume if ducking_volume is not None else settings.DUCKING_VOLUME
        self._fade_out_ms = fade_out_ms if fade_out_ms is not None else settings.FADE_OUT_MS
        self._fade_in_ms = fade_in_ms if fade_in_ms is not None else settings.FADE_IN_MS
        self._resume_delay_ms = resume_delay_ms if resume_delay_ms is not None else settings.RESUME_DELAY_MS
        self._enabled = enabled if enabled is not None else settings.DUCKING_ENABLED

        self._state = DuckingState.NORMAL
        self._fade: _Fade | None = None
        self._resume_at: float | None = None
        self._original_volume: float | None = None
        self._speaking = False

    @property
    def state(self) -> DuckingState:
        return self._state

    @property
    def is_ducked(self) -> bool:
        return self._state in (DuckingState.DUCKING, DuckingState.DUCKED)

    @property
    def resume_deadline(self) -> float | None:
        return self._resume_at

    @property
    def original_volume(self) -> float | None:
        return self._original_volume

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    def set_original_volume(self, volume: float) -> None:
        """Volume restored on the next resume (user changed volume while ducked)."""
        self._original_volume = volume

    def on_vad(self, is_speech: bool, now: float) -> None:
        """Forward one smoothed VAD decision."""
        was_speaking = self._speaking
        self._speaking = is_speech
        if not self._enabled:
            return
        if is_speech:
            self._resume_at = None
            if self._output.is_playing and not self.is_ducked:
                self.duck(now)
        elif was_speaking and self.is_ducked:
            self.resume_after(self._resume_delay_ms, now)

    def duck(self, now: float) -> None:
        """Fade down to the ducking volume. No-op when already ducked."""
        self._resume_at = None
        if self.is_ducked:
            return
        current = self._output.volume
        if self._state is DuckingState.NORMAL:
            self._original_volume = current
        self._fade = _Fade(current, self._ducking_volume, now, self._fade_out_ms)
        self._state = DuckingState.DUCKING
        logger.debug("Ducking %.2f -> %.2f", current, self._ducking_volume)
        self._apply(now)

    def resume_after(self, delay_ms: float, now: float) -> None:
        """Schedule a resume at now + delay_ms, replacing any earlier schedule."""
        self._resume_at = now + delay_ms

    def resume(self, now: float) -> None:
        """Fade back to the pre-duck volume; restart playback paused while ducked."""
        self._resume_at = None
        if not self.is_ducked:
            return
        target = self._original_volume if self._original_volume is not None else self._output.volume
        self._fade = _Fade(self._output.volume, target, now, self._fade_in_ms)
        self._state = DuckingState.RESUMING
        logger.debug("Resuming -> %.2f", target)
        if self._output.is_paused:
            self._output.unpause()
        self._apply(now)

    def tick(self, now: float) -> None:
        """Advance fades and fire the resume deadline."""
        if self._resume_at is not None and now >= self._resume_at:
            self.resume(now)
        self._apply(now)

    def restore(self) -> None:
        """Playback stopped: snap back to the pre-duck volume and forget the duck."""
        self._resume_at = None
        self._fade = None
        if self._state is not DuckingState.NORMAL and self._original_volume is not None:
            self._output.set_volume(self._original_volume)
            logger.debug("Playback stopped while ducked, restored %.2f", self._original_volume)
        self._state = DuckingState.NORMAL
        self._original_volume = None

    def cancel(self) -> None:
        """Clear pending resume and fades (teardown). Volume is left as is."""
        self._resume_at = None
        self._fade = None
        if self._state is DuckingState.DUCKING:
            self._state = DuckingState.DUCKED
        elif self._state is DuckingState.RESUMING:
            self._state = DuckingState.NORMAL

    def _apply(self, now: float) -> None:
        if self._fade is None:
            return
        self._output.set_volume(self._fade.value_at(now))
        if self._fade.done_at(now):
            self._fade = None
            if self._state is DuckingState.DUCKING:
                self._state = DuckingState.DUCKED
            elif self._state is DuckingState.RESUMING:
                self._state = DuckingState.NORMAL
                self._original_volume = None
