"""
RemoteTranslationBackend: HTTP translation API.

POST {TRANSLATION_API_BASE_URL}/v1/translate
  headers: X-Session-ID, X-Priority (+ Authorization when TRANSLATION_API_KEY is set)
  body:    {text, source_language, target_language, context,
            include_alternatives, include_confidence}
  reply:   {translated_text | translatedText, confidence, detected_language?,
            alternatives?, metadata?}

Timeouts raise TranslationTimeout; HTTP errors, transport errors and unusable
payloads raise TranslationBackendError. The orchestrator falls back to the local
backend on either.
"""
from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from handsfree.config import get_settings
from handsfree.errors import TranslationBackendError, TranslationTimeout
from handsfree.translation.base import (
    TranslationBackend,
    TranslationRequest,
    TranslationResponse,
    passthrough_response,
)

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGES = [
    "en", "es", "fr", "de", "it", "pt", "ru", "zh", "ja", "ko",
    "ar", "hi", "nl", "sv", "da", "no", "fi", "pl", "cs", "hu",
]


def _parse_response(data: Any) -> TranslationResponse:
    if not isinstance(data, dict):
        raise TranslationBackendError("Translation API returned a non-object payload")
    text = data.get("translated_text", data.get("translatedText"))
    if not isinstance(text, str):
        raise TranslationBackendError("Translation API response has no translated text")
    alternatives = data.get("alternatives") or []
    return TranslationResponse(
        translated_text=text,
        confidence=float(data.get("confidence", 0.0) or 0.0),
        detected_language=data.get("detected_language", data.get("detectedLanguage")),
        alternatives=[str(a) for a in alternatives] if isinstance(alternatives, list) else [],
        metadata=dict(data.get("metadata") or {}),
    )


class RemoteTranslationBackend(TranslationBackend):
    """
    Calls the translation API. When `client` is given it is used (and owned by the
    caller); otherwise a short-lived httpx.AsyncClient is opened per request.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url if base_url is not None else settings.TRANSLATION_API_BASE_URL).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.TRANSLATION_API_KEY
        self._timeout = timeout if timeout is not None else settings.TRANSLATION_TIMEOUT_SECONDS
        self._client = client

    @property
    def name(self) -> str:
        return "remote"

    def _headers(self, request: TranslationRequest) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Session-ID": request.session_id or "anonymous",
            "X-Priority": request.priority or "normal",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _post(self, client: httpx.AsyncClient, request: TranslationRequest) -> httpx.Response:
        payload = {
            "text": request.text,
            "source_language": request.source_language,
            "target_language": request.target_language,
            "context": request.context,
            "include_alternatives": True,
            "include_confidence": True,
        }
        resp = await client.post(
            f"{self._base_url}/v1/translate",
            json=payload,
            headers=self._headers(request),
            timeout=self._timeout,
        )
        resp.raise_for_status()
        return resp

    async def translate(self, request: TranslationRequest) -> TranslationResponse:
        if not request.text or not request.source_language or not request.target_language:
            raise TranslationBackendError("Missing required translation parameters")
        if request.source_language == request.target_language:
            return passthrough_response(request)

        started = time.monotonic()
        try:
            if self._client is not None:
                resp = await self._post(self._client, request)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await self._post(client, request)
            data = resp.json()
        except httpx.TimeoutException as e:
            raise TranslationTimeout(f"Translation API timed out after {self._timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise TranslationBackendError(
                f"Translation API failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise TranslationBackendError(f"Translation API request failed: {e}") from e
        except ValueError as e:
            raise TranslationBackendError("Translation API returned invalid JSON") from e

        response = _parse_response(data)
        response.latency_ms = (time.monotonic() - started) * 1000.0
        response.metadata["timestamp"] = int(time.time() * 1000)
        logger.info(
            "Translated %s->%s in %.0fms (confidence %.2f)",
            request.source_language,
            request.target_language,
            response.latency_ms,
            response.confidence,
        )
        return response

    async def supported_languages(self) -> list[str]:
        """Languages the API supports; DEFAULT_LANGUAGES when the API cannot say."""
        try:
            if self._client is not None:
                resp = await self._client.get(f"{self._base_url}/v1/languages", timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.get(f"{self._base_url}/v1/languages")
            resp.raise_for_status()
            languages = resp.json().get("languages") or []
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning("Failed to fetch supported languages: %s", e)
            return list(DEFAULT_LANGUAGES)
        return [str(lang) for lang in languages] or list(DEFAULT_LANGUAGES)
