"""
Voice activity detection on float32 frames.

Instantaneous decision per frame, then smoothed over a rolling window of the most
recent decisions: the smoothed state is "speech" iff the fraction of speech
decisions in the window exceeds VAD_ACTIVE_RATIO. Smoothing is what keeps a single
noisy frame from toggling ducking or opening a segment.

Two instantaneous deciders:
- EnergyVAD (default): RMS energy > VAD_ENERGY_THRESHOLD.
- WebRtcVAD: webrtcvad on 20ms sub-frames; speech iff at least half are voiced.
Both report the frame's RMS as `level`.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

import numpy as np
import webrtcvad

from handsfree.audio.receiver import float32_to_pcm_bytes
from handsfree.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class VoiceActivity:
    """Smoothed VAD output for one frame."""

    is_active: bool
    level: float  # RMS of the frame
    timestamp: float  # ms, monotonic
    duration_ms: float


def rms(samples: np.ndarray) -> float:
    """Root mean square of a float buffer; 0.0 for an empty buffer."""
    if samples.size == 0:
        return 0.0
    data = samples.astype(np.float64)
    return float(np.sqrt(np.mean(data * data)))


class EnergyVAD:
    """RMS-threshold VAD with a rolling smoothing window."""

    def __init__(
        self,
        threshold: float | None = None,
        window: int | None = None,
        active_ratio: float | None = None,
        sample_rate: int | None = None,
    ) -> None:
        settings = get_settings()
        self._threshold = threshold if threshold is not None else settings.VAD_ENERGY_THRESHOLD
        self._active_ratio = active_ratio if active_ratio is not None else settings.VAD_ACTIVE_RATIO
        self._sample_rate = sample_rate if sample_rate is not None else settings.SAMPLE_RATE
        size = window if window is not None else settings.VAD_WINDOW
        self._history: deque[bool] = deque(maxlen=max(1, size))

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    def _is_voiced(self, samples: np.ndarray, level: float) -> bool:
        return level > self._threshold

    def process(self, samples: np.ndarray, timestamp: float) -> VoiceActivity:
        """Classify one frame. timestamp is the frame's capture time in ms."""
        level = rms(samples)
        self._history.append(self._is_voiced(samples, level))
        fraction = sum(self._history) / len(self._history)
        return VoiceActivity(
            is_active=fraction > self._active_ratio,
            level=level,
            timestamp=timestamp,
            duration_ms=len(samples) / self._sample_rate * 1000.0,
        )

    def reset(self) -> None:
        self._history.clear()


class WebRtcVAD(EnergyVAD):
    """
    webrtcvad decisions on 20ms sub-frames of 16-bit PCM, same smoothing as EnergyVAD.
    Sample rate must be 8000, 16000, 32000 or 48000.
    """

    SUBFRAME_MS = 20

    def __init__(self, aggressiveness: int | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        settings = get_settings()
        level = aggressiveness if aggressiveness is not None else settings.VAD_WEBRTC_AGGRESSIVENESS
        self._vad = webrtcvad.Vad(level)
        self._subframe_samples = self.sample_rate * self.SUBFRAME_MS // 1000

    def _is_voiced(self, samples: np.ndarray, level: float) -> bool:
        n = self._subframe_samples
        count = len(samples) // n
        if count == 0:
            return False
        pcm = float32_to_pcm_bytes(samples[: count * n])
        step = n * 2
        voiced = sum(
            1
            for i in range(count)
            if self._vad.is_speech(pcm[i * step : (i + 1) * step], self.sample_rate)
        )
        return voiced * 2 >= count


def create_vad(backend: str | None = None) -> EnergyVAD:
    """Return VAD from config (energy / webrtc)."""
    settings = get_settings()
    backend = (backend or settings.VAD_BACKEND or "energy").strip().lower()
    if backend == "webrtc":
        return WebRtcVAD()
    if backend != "energy":
        logger.warning("Unknown VAD_BACKEND=%s; using energy", backend)
    return EnergyVAD()
