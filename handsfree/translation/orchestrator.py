"""
TranslationOrchestrator: turns routed final text into translation pipelines.

Flow for one routed text:
1. submit(role, text): queued in a short batch; every submission pushes the
   flush deadline to now + ROUTING_DELAY_MS. A newer final from the same role that
   extends the still-queued text word for word replaces it (engines re-send growing
   finals). Anything else, an identical repeat included, is queued on its own.
2. tick(now) at the deadline: each queued text becomes a TranslationPipeline
   (status pending). Employee speech goes to the customer language and vice versa.
   Same-language pipelines pass through; cached responses complete immediately.
3. Otherwise the pipeline is put on a FIFO queue consumed by
   MAX_CONCURRENT_TRANSLATIONS worker tasks. A pipeline becomes "processing" only
   when a worker takes it, so at most N are processing and the rest wait in
   arrival order.
4. Success: cache the response, status completed. TranslationError: the local
   fallback backend answers (not cached), status failed, an error event is emitted
   and the fallback text is still delivered.

All results go out on the session's EventChannel (translation-routed,
translation-received, error).
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from handsfree.clock import MonotonicClock
from handsfree.config import get_settings
from handsfree.errors import TranslationError
from handsfree.events import EventChannel, EventType
from handsfree.speech.models import Role
from handsfree.translation.base import (
    TranslationBackend,
    TranslationRequest,
    TranslationResponse,
    passthrough_response,
)
from handsfree.translation.cache import TranslationCache, cache_key, normalize_text
from handsfree.translation.local import LocalFallbackBackend
from handsfree.translation.remote import RemoteTranslationBackend

logger = logging.getLogger(__name__)


class PipelineStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TranslationPipeline:
    id: str
    session_id: str
    source_text: str
    source_language: str
    target_language: str
    speaker_type: Role
    status: PipelineStatus
    start_time: float
    end_time: float | None = None
    result: TranslationResponse | None = None
    error: str | None = None
    cached: bool = False
    fallback: bool = False

    @property
    def processing_time(self) -> float | None:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    @property
    def finished(self) -> bool:
        return self.status in (PipelineStatus.COMPLETED, PipelineStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "source_text": self.source_text,
            "source_language": self.source_language,
            "target_language": self.target_language,
            "speaker_type": self.speaker_type.value,
            "status": self.status.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "processing_time": self.processing_time,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "cached": self.cached,
            "fallback": self.fallback,
        }


@dataclass
class _QueuedText:
    role: Role
    text: str
    submitted_at: float


@dataclass
class _Counters:
    completed: int = 0
    failed: int = 0
    total_processing_ms: float = 0.0
    by_role: dict[str, int] = field(default_factory=dict)


def create_translation_backend(name: str | None = None) -> TranslationBackend:
    """Return translation backend from config (remote / local)."""
    settings = get_settings()
    name = (name or settings.TRANSLATION_BACKEND or "local").strip().lower()
    if name == "remote":
        return RemoteTranslationBackend()
    if name != "local":
        logger.warning("Unknown TRANSLATION_BACKEND=%s; using local", name)
    return LocalFallbackBackend()


def _extends(previous: str, text: str) -> bool:
    """True when `text` repeats every word of `previous` and adds at least one more."""
    old, new = normalize_text(previous).split(), normalize_text(text).split()
    return len(new) > len(old) and new[: len(old)] == old


class TranslationOrchestrator:
    def __init__(
        self,
        session_id: str,
        channel: EventChannel,
        clock: MonotonicClock,
        employee_language: str,
        customer_language: str,
        backend: TranslationBackend | None = None,
        fallback: LocalFallbackBackend | None = None,
        routing_delay_ms: int | None = None,
        max_concurrent: int | None = None,
        cache_enabled: bool | None = None,
        cache: TranslationCache | None = None,
        history_max: int | None = None,
    ) -> None:
        settings = get_settings()
        self._session_id = session_id
        self._channel = channel
        self._clock = clock
        self.employee_language = employee_language
        self.customer_language = customer_language
        self._backend = backend if backend is not None else create_translation_backend()
        self._fallback = fallback if fallback is not None else LocalFallbackBackend()
        self._routing_delay_ms = routing_delay_ms if routing_delay_ms is not None else settings.ROUTING_DELAY_MS
        self._max_concurrent = max(
            1, max_concurrent if max_concurrent is not None else settings.MAX_CONCURRENT_TRANSLATIONS
        )
        self._cache_enabled = cache_enabled if cache_enabled is not None else settings.TRANSLATION_CACHE_ENABLED
        self._cache = cache if cache is not None else TranslationCache()
        self._history_max = history_max if history_max is not None else settings.PIPELINE_HISTORY_MAX

        self._batch: list[_QueuedText] = []
        self._deadline: float | None = None
        self._queue: asyncio.Queue[TranslationPipeline] = asyncio.Queue()
        self._workers: list[asyncio.Task[Any]] = []
        self._pipelines: OrderedDict[str, TranslationPipeline] = OrderedDict()
        self._counters = _Counters()
        self._paused = False
        self._closed = False

    @property
    def backend(self) -> TranslationBackend:
        return self._backend

    @property
    def cache(self) -> TranslationCache:
        return self._cache

    @property
    def deadline(self) -> float | None:
        """Pending routing-delay deadline (ms) or None."""
        return self._deadline

    @property
    def paused(self) -> bool:
        return self._paused

    def set_languages(self, employee_language: str, customer_language: str) -> None:
        self.employee_language = employee_language
        self.customer_language = customer_language

    def start(self) -> None:
        """Spawn worker tasks. Must be called from a running event loop."""
        if self._workers:
            return
        self._closed = False
        for i in range(self._max_concurrent):
            self._workers.append(asyncio.create_task(self._worker(), name=f"translation-worker-{i}"))

    def pause(self) -> None:
        """Stop accepting routed text (auto-routing off)."""
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    # --- routing ---

    def submit(self, role: Role, text: str, now: float | None = None) -> bool:
        """Queue routed final text. Returns False when ignored (paused, unknown role, empty)."""
        text = (text or "").strip()
        if self._closed or self._paused or not text or role is Role.UNKNOWN:
            return False
        now = now if now is not None else self._clock.now_ms()
        if self._batch:
            last = self._batch[-1]
            if last.role is role and _extends(last.text, text):
                self._batch[-1] = _QueuedText(role=role, text=text, submitted_at=now)
                self._deadline = now + self._routing_delay_ms
                return True
        self._batch.append(_QueuedText(role=role, text=text, submitted_at=now))
        self._deadline = now + self._routing_delay_ms
        return True

    def tick(self, now: float) -> list[TranslationPipeline]:
        """Dispatch the batch when the routing delay has elapsed."""
        if self._deadline is None or now < self._deadline:
            return []
        return self.flush(now)

    def flush(self, now: float | None = None) -> list[TranslationPipeline]:
        """Dispatch every queued text now."""
        now = now if now is not None else self._clock.now_ms()
        batch, self._batch, self._deadline = self._batch, [], None
        return [self._dispatch(item, now) for item in batch]

    def _languages_for(self, role: Role) -> tuple[str, str]:
        if role is Role.EMPLOYEE:
            return self.employee_language, self.customer_language
        return self.customer_language, self.employee_language

    def _dispatch(self, item: _QueuedText, now: float) -> TranslationPipeline:
        source, target = self._languages_for(item.role)
        pipeline = TranslationPipeline(
            id=f"pipeline_{uuid.uuid4().hex[:12]}",
            session_id=self._session_id,
            source_text=item.text,
            source_language=source,
            target_language=target,
            speaker_type=item.role,
            status=PipelineStatus.PENDING,
            start_time=now,
        )
        self._remember(pipeline)

        if source == target:
            self._complete(pipeline, passthrough_response(self._request(pipeline)), now)
            return pipeline
        if self._cache_enabled:
            entry = self._cache.get(cache_key(source, target, item.text), now)
            if entry is not None:
                pipeline.cached = True
                self._complete(pipeline, entry.response, now)
                return pipeline
        self._queue.put_nowait(pipeline)
        return pipeline

    def _request(self, pipeline: TranslationPipeline) -> TranslationRequest:
        return TranslationRequest(
            text=pipeline.source_text,
            source_language=pipeline.source_language,
            target_language=pipeline.target_language,
            session_id=self._session_id,
            priority="high",
            context=f"{pipeline.speaker_type.value}_speech",
        )

    # --- workers ---

    async def _worker(self) -> None:
        while True:
            pipeline = await self._queue.get()
            try:
                if pipeline.status is PipelineStatus.PENDING:
                    pipeline.status = PipelineStatus.PROCESSING
                    await self._process(pipeline)
            finally:
                self._queue.task_done()

    async def _process(self, pipeline: TranslationPipeline) -> None:
        request = self._request(pipeline)
        try:
            response = await self._backend.translate(request)
        except TranslationError as e:
            logger.warning("Translation %s failed, using fallback: %s", pipeline.id, e)
            self._fail(pipeline, request, e)
            return
        except Exception as e:
            logger.exception("Translation %s failed unexpectedly", pipeline.id)
            self._fail(pipeline, request, e)
            return
        now = self._clock.now_ms()
        if self._cache_enabled:
            self._cache.put(cache_key(request.source_language, request.target_language, request.text), response, now)
        self._complete(pipeline, response, now)

    def _fail(self, pipeline: TranslationPipeline, request: TranslationRequest, error: Exception) -> None:
        pipeline.status = PipelineStatus.FAILED
        pipeline.error = str(error)
        pipeline.fallback = True
        pipeline.result = self._fallback.translate_sync(request)
        pipeline.end_time = self._clock.now_ms()
        self._counters.failed += 1
        self._channel.emit(
            EventType.ERROR,
            message=f"Translation failed: {error}",
            error_type=type(error).__name__,
            pipeline_id=pipeline.id,
        )
        self._emit_result(pipeline)
        self._trim_history()

    def _complete(self, pipeline: TranslationPipeline, response: TranslationResponse, now: float) -> None:
        pipeline.status = PipelineStatus.COMPLETED
        pipeline.result = response
        pipeline.end_time = now
        self._counters.completed += 1
        self._counters.total_processing_ms += now - pipeline.start_time
        role = pipeline.speaker_type.value
        self._counters.by_role[role] = self._counters.by_role.get(role, 0) + 1
        self._emit_result(pipeline)
        self._trim_history()

    def _emit_result(self, pipeline: TranslationPipeline) -> None:
        result = pipeline.result
        self._channel.emit(EventType.TRANSLATION_ROUTED, pipeline=pipeline.to_dict())
        self._channel.emit(
            EventType.TRANSLATION_RECEIVED,
            pipeline_id=pipeline.id,
            speaker_type=pipeline.speaker_type.value,
            original_text=pipeline.source_text,
            translated_text=result.translated_text if result else "",
            source_language=pipeline.source_language,
            target_language=pipeline.target_language,
            confidence=result.confidence if result else 0.0,
            cached=pipeline.cached,
            fallback=pipeline.fallback,
        )

    # --- bookkeeping ---

    def _remember(self, pipeline: TranslationPipeline) -> None:
        self._pipelines[pipeline.id] = pipeline

    def _trim_history(self) -> None:
        if len(self._pipelines) <= self._history_max:
            return
        for pipeline_id in [p.id for p in self._pipelines.values() if p.finished]:
            if len(self._pipelines) <= self._history_max:
                break
            del self._pipelines[pipeline_id]

    def get(self, pipeline_id: str) -> TranslationPipeline | None:
        return self._pipelines.get(pipeline_id)

    def pipelines(self) -> list[TranslationPipeline]:
        return list(self._pipelines.values())

    def recent(self, limit: int = 10) -> list[TranslationPipeline]:
        return list(self._pipelines.values())[-limit:]

    def clear_finished(self) -> int:
        finished = [p.id for p in self._pipelines.values() if p.finished]
        for pipeline_id in finished:
            del self._pipelines[pipeline_id]
        return len(finished)

    def stats(self) -> dict[str, Any]:
        active = sum(1 for p in self._pipelines.values() if p.status is PipelineStatus.PROCESSING)
        pending = sum(1 for p in self._pipelines.values() if p.status is PipelineStatus.PENDING)
        completed = self._counters.completed
        return {
            "total": completed + self._counters.failed + active + pending,
            "active": active,
            "pending": pending,
            "completed": completed,
            "failed": self._counters.failed,
            "average_processing_time": self._counters.total_processing_ms / completed if completed else 0.0,
            "by_speaker": dict(self._counters.by_role),
            "queue_size": self._queue.qsize(),
            "batched": len(self._batch),
            "cache": self._cache.stats(),
            "backend": self._backend.name,
            "paused": self._paused,
        }

    async def join(self) -> None:
        """Wait until every queued pipeline has been processed."""
        await self._queue.join()

    async def cancel(self) -> None:
        """Drop batched and queued work and stop the workers (session teardown)."""
        self._closed = True
        self._batch.clear()
        self._deadline = None
        while True:
            try:
                pipeline = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            pipeline.status = PipelineStatus.FAILED
            pipeline.error = "cancelled"
            pipeline.end_time = self._clock.now_ms()
            self._queue.task_done()
        for task in self._workers:
            task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        now = self._clock.now_ms()
        for pipeline in self._pipelines.values():
            if not pipeline.finished:
                pipeline.status = PipelineStatus.FAILED
                pipeline.error = pipeline.error or "cancelled"
                pipeline.end_time = now
        await self._backend.aclose()
