"""
TranslationBackend: abstract interface for machine translation.

Implementations: RemoteTranslationBackend (HTTP API via httpx),
LocalFallbackBackend (phrase table, no network). The orchestrator picks one at
construction (TRANSLATION_BACKEND) and always keeps the local one for fallback.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from handsfree.errors import TranslationError

logger = logging.getLogger(__name__)


@dataclass
class TranslationRequest:
    text: str
    source_language: str
    target_language: str
    session_id: str = ""
    priority: str = "high"
    context: str | None = None  # e.g. "employee_speech"


@dataclass
class TranslationResponse:
    """Result of one translate call."""

    translated_text: str
    confidence: float  # 0.0 to 1.0 estimate
    detected_language: str | None = None
    alternatives: list[str] = field(default_factory=list)
    latency_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "translated_text": self.translated_text,
            "confidence": self.confidence,
            "detected_language": self.detected_language,
            "alternatives": list(self.alternatives),
            "latency_ms": self.latency_ms,
            "metadata": dict(self.metadata),
        }


def passthrough_response(request: TranslationRequest) -> TranslationResponse:
    """Same source and target language: return the text unchanged."""
    return TranslationResponse(
        translated_text=request.text,
        confidence=1.0,
        detected_language=request.source_language,
        latency_ms=0.0,
        metadata={"model": "passthrough"},
    )


class TranslationBackend(ABC):
    """
    Abstract translation backend.
    translate() raises TranslationTimeout / TranslationBackendError on failure.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def translate(self, request: TranslationRequest) -> TranslationResponse:
        ...

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None

    async def health_check(self) -> dict[str, Any]:
        """Translate a fixed phrase; reports status, latency_ms and the error if any."""
        started = time.monotonic()
        try:
            await self.translate(
                TranslationRequest(text="hello", source_language="en", target_language="es", session_id="health-check")
            )
        except TranslationError as e:
            logger.warning("Translation backend %s unhealthy: %s", self.name, e)
            return {"status": "unhealthy", "latency_ms": (time.monotonic() - started) * 1000.0, "error": str(e)}
        return {"status": "healthy", "latency_ms": (time.monotonic() - started) * 1000.0}
