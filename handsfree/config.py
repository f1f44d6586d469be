"""Application configuration. Loads from env vars."""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit mono, 16kHz on the wire
    SAMPLE_RATE: int = 16000
    SAMPLE_WIDTH: int = 2  # 16-bit
    CHANNELS: int = 1

    # Frame fed to the VAD: 1600 samples = 100ms @ 16kHz = 3200 bytes
    FRAME_SAMPLES: int = 1600

    # Voice activity detection
    VAD_BACKEND: Literal["energy", "webrtc"] = "energy"
    VAD_ENERGY_THRESHOLD: float = 0.01  # RMS above this = instantaneous speech
    VAD_WINDOW: int = 10  # smoothing window (frames)
    VAD_ACTIVE_RATIO: float = 0.3  # smoothed speech iff active fraction > this
    VAD_WEBRTC_AGGRESSIVENESS: int = 2  # 0..3, only for VAD_BACKEND=webrtc

    # Segmentation (ms)
    SILENCE_THRESHOLD_MS: int = 600
    MIN_SEGMENT_DURATION_MS: int = 1500
    # Frames buffered before the open segment is scored against voice prints
    IDENTIFY_MIN_FRAMES: int = 5
    IDENTIFY_MAX_FRAMES: int = 100

    # Voiceprint enrollment
    VOICEPRINT_FEATURES: int = 128
    ENROLLMENT_DURATION_MS: int = 6000
    ENROLLMENT_MIN_AUDIO_LEVEL: float = 0.01
    ENROLLMENT_QUALITY_THRESHOLD: float = 0.7

    # Voiceprint matching
    MATCH_ALGORITHM: Literal["cosine", "euclidean", "hybrid"] = "hybrid"
    MATCH_CONFIDENCE_THRESHOLD: float = 0.65
    MATCH_MAX_CANDIDATES: int = 5
    MATCH_CACHE_SIZE: int = 100
    HYBRID_COSINE_WEIGHT: float = 0.4
    HYBRID_EUCLIDEAN_WEIGHT: float = 0.3
    HYBRID_WEIGHTED_WEIGHT: float = 0.3

    # Speaker routing
    VOICEPRINT_THRESHOLD: float = 0.65
    ROUTER_DIARIZATION_CONFIDENCE: float = 0.7
    ROUTER_EMPLOYEE_MARGIN: float = 0.05

    # Translation
    TRANSLATION_BACKEND: Literal["remote", "local"] = "local"
    TRANSLATION_API_BASE_URL: str = "http://localhost:8080"
    TRANSLATION_API_KEY: str = ""
    TRANSLATION_TIMEOUT_SECONDS: float = 10.0
    ROUTING_DELAY_MS: int = 500
    MAX_CONCURRENT_TRANSLATIONS: int = 3
    TRANSLATION_CACHE_ENABLED: bool = True
    TRANSLATION_CACHE_TTL_SECONDS: int = 24 * 60 * 60
    TRANSLATION_CACHE_MAX_ENTRIES: int = 1000
    PIPELINE_HISTORY_MAX: int = 500

    # Audio ducking during synthesized playback
    DUCKING_ENABLED: bool = True
    DUCKING_VOLUME: float = 0.2
    FADE_OUT_MS: int = 150
    FADE_IN_MS: int = 200
    RESUME_DELAY_MS: int = 600
    MASTER_VOLUME: float = 0.9

    # Session
    DEFAULT_EMPLOYEE_LANGUAGE: str = "en"
    DEFAULT_CUSTOMER_LANGUAGE: str = "es"
    MAX_SESSION_SECONDS: int = 60 * 60
    TICK_INTERVAL_MS: int = 10
    EVENT_QUEUE_SIZE: int = 1000
    SESSION_HISTORY_MAX: int = 50

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path = also write to file (empty = console only).
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""  # e.g. "logs/handsfree.log"

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()
