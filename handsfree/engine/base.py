"""
SpeechEngine: abstract interface for the streaming speech engine (ASR +
diarization) that feeds the router.

The core never transcribes; an engine delivers StreamChunk values (partial/final
text, diarization hint, optional voiceprint score and VAD flag) to the callback
registered with start_stream(). enroll() turns an enrollment sample into the
engine's voice-print feature vector.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from handsfree.speech.models import StreamChunk

if TYPE_CHECKING:
    import numpy as np

ChunkCallback = Callable[[StreamChunk], None]


@dataclass
class StreamOptions:
    language: str
    diarization: bool = True
    voiceprint_ids: list[str] | None = None  # owner ids the engine should score against


class SpeechEngine(ABC):
    """
    Abstract speech engine. start_stream() raises AudioDeviceUnavailable when the
    capture device cannot be opened.
    """

    @abstractmethod
    async def enroll(self, samples: "np.ndarray") -> "np.ndarray":
        """Feature vector for an enrollment sample (float32 mono, [-1, 1])."""
        ...

    @abstractmethod
    async def start_stream(self, options: StreamOptions, on_chunk: ChunkCallback) -> None:
        ...

    @abstractmethod
    async def stop_stream(self) -> None:
        ...

    @property
    @abstractmethod
    def streaming(self) -> bool:
        ...
