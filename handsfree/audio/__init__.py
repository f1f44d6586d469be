"""Audio pipeline: receive, VAD, segmentation; playback and ducking."""
from .receiver import AudioReceiver, pcm_bytes_to_float32
from .vad import EnergyVAD, VoiceActivity, WebRtcVAD, create_vad
from .segmenter import Segmenter, SegmenterState
from .playback import AudioOutput, AudioPlayback, NullAudioOutput
from .ducking import DuckingCoordinator, DuckingState

__all__ = [
    "AudioReceiver",
    "pcm_bytes_to_float32",
    "EnergyVAD",
    "WebRtcVAD",
    "VoiceActivity",
    "create_vad",
    "Segmenter",
    "SegmenterState",
    "AudioOutput",
    "AudioPlayback",
    "NullAudioOutput",
    "DuckingCoordinator",
    "DuckingState",
]
