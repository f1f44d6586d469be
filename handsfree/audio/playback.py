"""
Playback sink for synthesized speech.

AudioOutput is the device-facing interface; the TTS layer and the ducking
coordinator only ever talk to it through volume and transport calls.
NullAudioOutput keeps state in memory (server-side sessions, where the browser
does the actual playback, and tests). AudioPlayback is the facade handed to the
TTS layer: play/duck/resume_after/resume/stop with the clock filled in.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from handsfree.config import get_settings
from handsfree.errors import AudioDeviceUnavailable

if TYPE_CHECKING:
    from handsfree.audio.ducking import DuckingCoordinator
    from handsfree.clock import MonotonicClock

logger = logging.getLogger(__name__)


class AudioOutput(ABC):
    """Abstract playback device. Implementations raise AudioDeviceUnavailable on device failure."""

    @abstractmethod
    def play(self, source: str) -> None:
        """Start playing `source` (URL or handle) from the beginning."""
        ...

    @abstractmethod
    def stop(self) -> None:
        ...

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def unpause(self) -> None:
        ...

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        """Volume in [0, 1]."""
        ...

    @property
    @abstractmethod
    def volume(self) -> float:
        ...

    @property
    @abstractmethod
    def is_playing(self) -> bool:
        """True while a source is loaded and not stopped (paused counts as playing)."""
        ...

    @property
    @abstractmethod
    def is_paused(self) -> bool:
        ...


class NullAudioOutput(AudioOutput):
    """In-memory output. `available=False` simulates a missing device."""

    def __init__(self, volume: float = 1.0, available: bool = True) -> None:
        self._volume = volume
        self._source: str | None = None
        self._playing = False
        self._paused = False
        self.available = available
        self.volume_history: list[float] = []

    def _check(self) -> None:
        if not self.available:
            raise AudioDeviceUnavailable("Audio output device unavailable")

    def play(self, source: str) -> None:
        self._check()
        self._source = source
        self._playing = True
        self._paused = False

    def stop(self) -> None:
        self._source = None
        self._playing = False
        self._paused = False

    def pause(self) -> None:
        if self._playing:
            self._paused = True

    def unpause(self) -> None:
        self._check()
        if self._playing:
            self._paused = False

    def set_volume(self, volume: float) -> None:
        self._check()
        self._volume = min(1.0, max(0.0, float(volume)))
        self.volume_history.append(self._volume)

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def source(self) -> str | None:
        return self._source

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def is_paused(self) -> bool:
        return self._paused


class AudioPlayback:
    """
    Sink exposed to the TTS layer. Owns the output's master volume and delegates
    ducking to the session's DuckingCoordinator.
    """

    def __init__(
        self,
        output: AudioOutput,
        ducking: "DuckingCoordinator",
        clock: "MonotonicClock",
        master_volume: float | None = None,
    ) -> None:
        settings = get_settings()
        self._output = output
        self._ducking = ducking
        self._clock = clock
        self._master_volume = master_volume if master_volume is not None else settings.MASTER_VOLUME
        self._output.set_volume(self._master_volume)

    @property
    def output(self) -> AudioOutput:
        return self._output

    @property
    def is_playing(self) -> bool:
        return self._output.is_playing

    @property
    def volume(self) -> float:
        """Master volume (restored after ducking)."""
        return self._master_volume

    @volume.setter
    def volume(self, value: float) -> None:
        self._master_volume = min(1.0, max(0.0, float(value)))
        if self._ducking.is_ducked:
            self._ducking.set_original_volume(self._master_volume)
        else:
            self._output.set_volume(self._master_volume)

    @property
    def current_volume(self) -> float:
        """Volume at the device right now (lower than master while ducked)."""
        return self._output.volume

    def play(self, source: str) -> None:
        logger.info("Playback started: %s", source)
        self._output.play(source)

    def stop(self) -> None:
        self._output.stop()
        self._ducking.restore()

    def pause(self) -> None:
        self._output.pause()

    def unpause(self) -> None:
        self._output.unpause()

    def duck(self) -> None:
        self._ducking.duck(self._clock.now_ms())

    def resume_after(self, delay_ms: float) -> None:
        self._ducking.resume_after(delay_ms, self._clock.now_ms())

    def resume(self) -> None:
        self._ducking.resume(self._clock.now_ms())
