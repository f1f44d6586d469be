"""
LocalSpeechEngine: engine adapter for a client-side recognizer.

The browser (or any external recognizer) runs ASR and diarization and sends the
results over the session WebSocket as JSON; feed() hands each parsed chunk to the
callback registered by start_stream(). Enrollment features are computed locally
in an executor so the event loop is not blocked.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import numpy as np

from handsfree.config import get_settings
from handsfree.engine.base import ChunkCallback, SpeechEngine, StreamOptions
from handsfree.errors import AudioDeviceUnavailable
from handsfree.speech.features import extract_features
from handsfree.speech.models import StreamChunk

logger = logging.getLogger(__name__)


class LocalSpeechEngine(SpeechEngine):
    def __init__(self, device_available: bool = True) -> None:
        self._n_features = get_settings().VOICEPRINT_FEATURES
        self._on_chunk: ChunkCallback | None = None
        self._options: StreamOptions | None = None
        self._device_available = device_available

    @property
    def streaming(self) -> bool:
        return self._on_chunk is not None

    @property
    def options(self) -> StreamOptions | None:
        return self._options

    async def enroll(self, samples: np.ndarray) -> np.ndarray:
        loop = asyncio.get_running_loop()
        data = np.asarray(samples, dtype=np.float32)
        return await loop.run_in_executor(None, extract_features, data, self._n_features)

    async def start_stream(self, options: StreamOptions, on_chunk: ChunkCallback) -> None:
        if not self._device_available:
            raise AudioDeviceUnavailable("Capture device unavailable")
        self._options = options
        self._on_chunk = on_chunk
        logger.info("Speech stream started (language=%s)", options.language)

    async def stop_stream(self) -> None:
        self._on_chunk = None
        self._options = None

    def feed(self, data: StreamChunk | dict[str, Any]) -> bool:
        """Deliver one chunk from the client. Returns False when no stream is running."""
        if self._on_chunk is None:
            logger.debug("Chunk dropped: stream not started")
            return False
        chunk = data if isinstance(data, StreamChunk) else StreamChunk.from_dict(data)
        self._on_chunk(chunk)
        return True
