"""Speech engine adapters: interface and local (client-fed) implementation."""
from handsfree.engine.base import SpeechEngine, StreamOptions
from handsfree.engine.local import LocalSpeechEngine

__all__ = ["SpeechEngine", "StreamOptions", "LocalSpeechEngine"]
