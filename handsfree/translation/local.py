"""
LocalFallbackBackend: offline translation used when the remote backend fails
(or as the only backend in development).

Known phrases come from a small per-direction table (confidence 0.95). Anything
else is returned tagged with the target language, e.g. "[ES] good morning"
(confidence 0.7), so the conversation keeps flowing and the UI can flag it.
"""
from __future__ import annotations

import time

from handsfree.translation.base import (
    TranslationBackend,
    TranslationRequest,
    TranslationResponse,
    passthrough_response,
)

_PHRASES: dict[str, dict[str, str]] = {
    "en-es": {
        "hello": "hola",
        "goodbye": "adiós",
        "thank you": "gracias",
        "please": "por favor",
        "excuse me": "disculpe",
        "how can i help you": "cómo puedo ayudarte",
        "what is your name": "cómo te llamas",
        "i need help": "necesito ayuda",
        "where is the bathroom": "dónde está el baño",
        "how much does it cost": "cuánto cuesta",
        "i don't understand": "no entiendo",
        "can you repeat that": "puedes repetir eso",
        "speak more slowly": "habla más despacio",
        "i am looking for": "estoy buscando",
        "what time is it": "qué hora es",
    },
    "en-fr": {
        "hello": "bonjour",
        "goodbye": "au revoir",
        "thank you": "merci",
        "please": "s'il vous plaît",
        "excuse me": "excusez-moi",
        "how can i help you": "comment puis-je vous aider",
        "what is your name": "comment vous appelez-vous",
        "i need help": "j'ai besoin d'aide",
        "where is the bathroom": "où sont les toilettes",
        "how much does it cost": "combien ça coûte",
    },
}
# Reverse directions (es-en, fr-en) from the same tables.
for _pair, _table in list(_PHRASES.items()):
    _src, _tgt = _pair.split("-")
    _PHRASES[f"{_tgt}-{_src}"] = {v: k for k, v in _table.items()}

KNOWN_PHRASE_CONFIDENCE = 0.95
FALLBACK_CONFIDENCE = 0.7


def _normalize(text: str) -> str:
    return " ".join(text.lower().split()).strip(" .!?¿¡,")


class LocalFallbackBackend(TranslationBackend):
    @property
    def name(self) -> str:
        return "local"

    async def translate(self, request: TranslationRequest) -> TranslationResponse:
        return self.translate_sync(request)

    def translate_sync(self, request: TranslationRequest) -> TranslationResponse:
        """Synchronous; never raises for well-formed requests."""
        started = time.monotonic()
        if request.source_language == request.target_language:
            return passthrough_response(request)
        table = _PHRASES.get(f"{request.source_language}-{request.target_language}", {})
        known = table.get(_normalize(request.text))
        if known is not None:
            return TranslationResponse(
                translated_text=known,
                confidence=KNOWN_PHRASE_CONFIDENCE,
                detected_language=request.source_language,
                latency_ms=(time.monotonic() - started) * 1000.0,
                metadata={"model": "phrase-table"},
            )
        return TranslationResponse(
            translated_text=f"[{request.target_language.upper()}] {request.text}",
            confidence=FALLBACK_CONFIDENCE,
            detected_language=request.source_language,
            alternatives=[f"Translation of: {request.text}"],
            latency_ms=(time.monotonic() - started) * 1000.0,
            metadata={"model": "fallback"},
        )
