"""
AudioReceiver: accepts raw PCM audio from the WebSocket and yields VAD frames.

- Expects PCM 16-bit mono at SAMPLE_RATE (16 kHz).
- Emits fixed-size float32 frames of FRAME_SAMPLES samples, normalized to [-1, 1].
- Any incomplete tail stays buffered until the next message.
"""
from __future__ import annotations

import numpy as np

from handsfree.config import get_settings


def pcm_bytes_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """Convert PCM 16-bit mono bytes to float32 [-1.0, 1.0]."""
    samples = np.frombuffer(pcm_bytes, dtype=np.int16)
    return samples.astype(np.float32) / 32768.0


def float32_to_pcm_bytes(samples: np.ndarray) -> bytes:
    """Convert float32 [-1.0, 1.0] to PCM 16-bit mono bytes (clipped)."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    return (clipped * 32767.0).astype(np.int16).tobytes()


class AudioReceiver:
    """
    Buffers incoming binary WebSocket messages into fixed-size frames.
    Frame size is in samples; byte size = samples * SAMPLE_WIDTH.
    """

    def __init__(self, frame_samples: int | None = None) -> None:
        settings = get_settings()
        samples = frame_samples if frame_samples is not None else settings.FRAME_SAMPLES
        self._frame_bytes = samples * settings.SAMPLE_WIDTH
        self._buffer = bytearray()

    @property
    def frame_bytes(self) -> int:
        return self._frame_bytes

    def feed(self, data: bytes) -> None:
        """Append raw PCM bytes. Call from WebSocket handler."""
        self._buffer.extend(data)

    def drain_frames(self) -> list[np.ndarray]:
        """
        Drain all complete frames from the buffer as float32 arrays.
        Remainder (incomplete frame) stays in buffer.
        """
        out: list[np.ndarray] = []
        while len(self._buffer) >= self._frame_bytes:
            out.append(pcm_bytes_to_float32(bytes(self._buffer[: self._frame_bytes])))
            del self._buffer[: self._frame_bytes]
        return out

    def remaining_bytes(self) -> int:
        """Bytes left in buffer (incomplete frame)."""
        return len(self._buffer)

    def clear(self) -> None:
        self._buffer.clear()
