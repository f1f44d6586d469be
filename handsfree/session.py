"""
ConversationSession: the session-scoped context that owns every component of one
hands-free conversation.

    audio frame -> VAD -> Segmenter -> SpeakerTracker (VoicePrintMatcher)
                     +-> DuckingCoordinator (playback volume)
    engine chunk -> SpeakerRouter -> TranslationOrchestrator -> events

Lifecycle INIT -> ACTIVE -> DISPOSED. Voice prints can be enrolled in INIT or
ACTIVE; audio and chunks are accepted only while ACTIVE. dispose() cancels every
per-session timer (segment silence deadline, ducking resume, routing delay), stops
the translation workers and the engine stream, drops the voice prints and returns a
final snapshot.

Nothing here sleeps: time comes from the injected clock, and the owner calls
tick() regularly (WebSocketManager runs a ticker task every TICK_INTERVAL_MS).
All output goes to `channel` as typed SessionEvent values.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from handsfree.audio.ducking import DuckingCoordinator
from handsfree.audio.playback import AudioOutput, AudioPlayback, NullAudioOutput
from handsfree.audio.segmenter import Segmenter
from handsfree.audio.vad import EnergyVAD, VoiceActivity, create_vad
from handsfree.clock import MonotonicClock
from handsfree.config import get_settings
from handsfree.engine.base import SpeechEngine, StreamOptions
from handsfree.engine.local import LocalSpeechEngine
from handsfree.errors import (
    AudioDeviceUnavailable,
    EnrollmentQualityTooLow,
    InvalidVoicePrint,
    SessionStateError,
)
from handsfree.events import EventChannel, EventType
from handsfree.services.analytics import ConversationAnalytics
from handsfree.speech.enrollment import VoicePrintEnroller
from handsfree.speech.matcher import VoicePrintMatcher
from handsfree.speech.models import Role, SpeakerSegment, StreamChunk, VoicePrint
from handsfree.speech.router import RoutingDecision, SpeakerRouter
from handsfree.speech.tracker import UNKNOWN_SPEAKER, SpeakerChange, SpeakerTracker
from handsfree.translation.base import TranslationBackend
from handsfree.translation.orchestrator import TranslationOrchestrator

logger = logging.getLogger(__name__)


class SessionLifecycle(str, Enum):
    INIT = "init"
    ACTIVE = "active"
    DISPOSED = "disposed"


_TRANSITIONS = {
    SessionLifecycle.INIT: {SessionLifecycle.ACTIVE, SessionLifecycle.DISPOSED},
    SessionLifecycle.ACTIVE: {SessionLifecycle.DISPOSED},
    SessionLifecycle.DISPOSED: set(),
}


@dataclass
class ConversationState:
    session_id: str
    employee_language: str
    customer_language: str
    is_active: bool = False
    is_enrolling: bool = False
    employee_voice_print: VoicePrint | None = None
    segments: list[SpeakerSegment] = field(default_factory=list)
    current_speaker: str = UNKNOWN_SPEAKER
    last_activity: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> dict[str, Any]:
        vp = self.employee_voice_print
        return {
            "session_id": self.session_id,
            "employee_language": self.employee_language,
            "customer_language": self.customer_language,
            "is_active": self.is_active,
            "is_enrolling": self.is_enrolling,
            "employee_voice_print": (
                {"id": vp.id, "owner_id": vp.owner_id, "confidence": vp.confidence} if vp else None
            ),
            "segments": [s.to_dict() for s in self.segments],
            "current_speaker": self.current_speaker,
            "last_activity": self.last_activity,
        }


@dataclass
class SessionSnapshot:
    state: dict[str, Any]
    analytics: dict[str, Any]
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> dict[str, Any]:
        return {"state": self.state, "analytics": self.analytics, "timestamp": self.timestamp}


class ConversationSession:
    def __init__(
        self,
        session_id: str,
        employee_language: str | None = None,
        customer_language: str | None = None,
        clock: MonotonicClock | None = None,
        output: AudioOutput | None = None,
        backend: TranslationBackend | None = None,
        engine: SpeechEngine | None = None,
        vad: EnergyVAD | None = None,
    ) -> None:
        settings = get_settings()
        employee_language = employee_language or settings.DEFAULT_EMPLOYEE_LANGUAGE
        customer_language = customer_language or settings.DEFAULT_CUSTOMER_LANGUAGE
        self.session_id = session_id
        self.clock = clock if clock is not None else MonotonicClock()
        self.channel = EventChannel(session_id, maxsize=settings.EVENT_QUEUE_SIZE)

        self.vad = vad if vad is not None else create_vad()
        self.segmenter = Segmenter()
        self.matcher = VoicePrintMatcher()
        self.enroller = VoicePrintEnroller()
        self.tracker = SpeakerTracker(self.matcher)
        self.router = SpeakerRouter()
        self.output = output if output is not None else NullAudioOutput()
        self.ducking = DuckingCoordinator(self.output)
        self.playback = AudioPlayback(self.output, self.ducking, self.clock)
        self.orchestrator = TranslationOrchestrator(
            session_id=session_id,
            channel=self.channel,
            clock=self.clock,
            employee_language=employee_language,
            customer_language=customer_language,
            backend=backend,
        )
        self.engine = engine if engine is not None else LocalSpeechEngine()

        self.state = ConversationState(
            session_id=session_id,
            employee_language=employee_language,
            customer_language=customer_language,
        )
        self.analytics = ConversationAnalytics(
            session_id=session_id, languages=[employee_language, customer_language]
        )
        self._lifecycle = SessionLifecycle.INIT
        self._created_ms = self.clock.now_ms()
        self._max_duration_ms = settings.MAX_SESSION_SECONDS * 1000.0
        self._speaking = False
        self._last_status: str | None = None
        self._final_snapshot: SessionSnapshot | None = None

    # --- lifecycle ---

    @property
    def lifecycle(self) -> SessionLifecycle:
        return self._lifecycle

    @property
    def is_active(self) -> bool:
        return self._lifecycle is SessionLifecycle.ACTIVE

    def _transition(self, target: SessionLifecycle) -> None:
        if target not in _TRANSITIONS[self._lifecycle]:
            raise SessionStateError(
                f"Session {self.session_id}: cannot go from {self._lifecycle.value} to {target.value}"
            )
        previous = self._lifecycle
        self._lifecycle = target
        logger.info("Session %s: %s -> %s", self.session_id, previous.value, target.value)
        self.channel.emit(EventType.SESSION_STATE, previous=previous.value, state=target.value)

    def _require(self, *allowed: SessionLifecycle) -> None:
        if self._lifecycle not in allowed:
            raise SessionStateError(
                f"Session {self.session_id} is {self._lifecycle.value}; "
                f"expected {' or '.join(a.value for a in allowed)}"
            )

    async def start(self) -> None:
        """INIT -> ACTIVE: start translation workers and the engine stream."""
        self._require(SessionLifecycle.INIT)
        self._transition(SessionLifecycle.ACTIVE)
        self.orchestrator.start()
        options = StreamOptions(
            language=self.state.employee_language,
            voiceprint_ids=[vp.owner_id for vp in self.matcher.voice_prints()],
        )
        try:
            await self.engine.start_stream(options, self._on_engine_chunk)
        except AudioDeviceUnavailable as e:
            logger.error("Session %s: audio device unavailable: %s", self.session_id, e)
            self.channel.emit(EventType.ERROR, message=str(e), error_type=type(e).__name__, fatal=True)
            await self.dispose()
            raise
        self.state.is_active = True
        self._emit_status(self.router.status)

    def expired(self, now: float | None = None) -> bool:
        """True once the session has run longer than MAX_SESSION_SECONDS."""
        now = now if now is not None else self.clock.now_ms()
        return now - self._created_ms > self._max_duration_ms

    async def dispose(self) -> SessionSnapshot:
        """Tear down (idempotent). Returns the final snapshot."""
        if self._lifecycle is SessionLifecycle.DISPOSED and self._final_snapshot is not None:
            return self._final_snapshot
        self.segmenter.cancel()
        self.tracker.reset()
        self.ducking.cancel()
        await self.orchestrator.cancel()
        await self.engine.stop_stream()
        self.output.stop()

        self._sync_analytics()
        vp = self.state.employee_voice_print
        self.analytics.finalize(vp.confidence if vp else None)
        self.state.is_active = False
        self.state.is_enrolling = False
        self._final_snapshot = self.snapshot()
        self.matcher.clear()
        if self._lifecycle is not SessionLifecycle.DISPOSED:
            self._transition(SessionLifecycle.DISPOSED)
        return self._final_snapshot

    # --- voice prints ---

    def enroll(self, samples: np.ndarray, owner_id: str = "employee", role: Role = Role.EMPLOYEE) -> VoicePrint:
        """
        Enroll a voice print from one sample and register it.
        Raises EnrollmentTooQuiet / EnrollmentInconsistent; the caller may retry.
        """
        self._require(SessionLifecycle.INIT, SessionLifecycle.ACTIVE)
        self.state.is_enrolling = True
        try:
            voice_print = self.enroller.enroll(samples, owner_id=owner_id, role=role)
        except EnrollmentQualityTooLow as e:
            self.channel.emit(
                EventType.ENROLLMENT_FAILED,
                owner_id=owner_id,
                message=str(e),
                error_type=type(e).__name__,
                quality=e.quality,
            )
            raise
        finally:
            self.state.is_enrolling = False
        self.add_voice_print(voice_print)
        self.channel.emit(
            EventType.ENROLLMENT_COMPLETE,
            owner_id=owner_id,
            voice_print_id=voice_print.id,
            quality=voice_print.confidence,
        )
        return voice_print

    def add_voice_print(self, voice_print: VoicePrint) -> None:
        self._require(SessionLifecycle.INIT, SessionLifecycle.ACTIVE)
        issues = self.matcher.validate_voice_print(voice_print)
        if issues:
            raise InvalidVoicePrint(issues)
        self.matcher.add_voice_print(voice_print)
        if voice_print.role is Role.EMPLOYEE:
            self.state.employee_voice_print = voice_print

    def remove_voice_print(self, owner_id: str) -> bool:
        removed = self.matcher.remove_voice_print(owner_id)
        vp = self.state.employee_voice_print
        if removed and vp is not None and vp.owner_id == owner_id:
            self.state.employee_voice_print = None
        return removed

    def set_languages(self, employee_language: str, customer_language: str) -> None:
        self.state.employee_language = employee_language
        self.state.customer_language = customer_language
        self.orchestrator.set_languages(employee_language, customer_language)
        self.analytics.languages = [employee_language, customer_language]

    # --- audio path ---

    def process_audio_frame(self, samples: np.ndarray, timestamp: float | None = None) -> VoiceActivity:
        """Run one captured frame through VAD, ducking, segmentation and speaker tracking."""
        self._require(SessionLifecycle.ACTIVE)
        now = timestamp if timestamp is not None else self.clock.now_ms()
        activity = self.vad.process(samples, now)

        if activity.is_active != self._speaking:
            self._speaking = activity.is_active
            self.channel.emit(
                EventType.SPEECH_START if activity.is_active else EventType.SPEECH_END,
                level=activity.level,
                at=now,
            )
        self.ducking.on_vad(activity.is_active, now)

        was_open = self.segmenter.is_open
        discarded = self.segmenter.discarded_count
        segment = self.segmenter.push(activity)
        if segment is not None:
            self._on_segment(segment)
        elif self.segmenter.discarded_count != discarded:
            self.tracker.begin_segment()

        if self.segmenter.is_open:
            if not was_open:
                self.tracker.begin_segment()
            change = self.tracker.append(samples)
            if change is not None:
                self._on_speaker_change(change)

        self.ducking.tick(now)
        self.orchestrator.tick(now)
        self.state.last_activity = int(time.time() * 1000)
        return activity

    def tick(self, now: float | None = None) -> None:
        """Advance every timer. Safe to call in any state; a no-op unless ACTIVE."""
        if self._lifecycle is not SessionLifecycle.ACTIVE:
            return
        now = now if now is not None else self.clock.now_ms()
        discarded = self.segmenter.discarded_count
        segment = self.segmenter.tick(now)
        if segment is not None:
            self._on_segment(segment)
        elif self.segmenter.discarded_count != discarded:
            self.tracker.begin_segment()
        self.ducking.tick(now)
        self.orchestrator.tick(now)

    def _segment_role(self, segment: SpeakerSegment) -> Role:
        if segment.is_employee:
            return Role.EMPLOYEE
        # Two-party conversation: once an employee is enrolled, anyone else is the customer.
        if len(self.matcher) > 0:
            return Role.CUSTOMER
        return Role.UNKNOWN

    def _on_segment(self, segment: SpeakerSegment) -> None:
        self.tracker.finish(segment)
        role = self._segment_role(segment)
        self.state.segments.append(segment)
        self.analytics.record_segment(segment, role)
        self.channel.emit(EventType.SPEAKER_SEGMENT, segment=segment.to_dict(), role=role.value)

    def _on_speaker_change(self, change: SpeakerChange) -> None:
        self.state.current_speaker = change.current
        if change.previous != UNKNOWN_SPEAKER:
            self.analytics.record_speaker_change()
        self.channel.emit(
            EventType.SPEAKER_CHANGE,
            previous=change.previous,
            speaker_id=change.current,
            confidence=change.confidence,
            is_employee=change.is_employee,
        )

    def force_speaker_change(self, speaker_id: str) -> None:
        """Manual speaker override from the UI."""
        self._require(SessionLifecycle.ACTIVE)
        change = self.tracker.force_speaker_change(speaker_id)
        if change is not None:
            self._on_speaker_change(change)

    # --- engine path ---

    def _on_engine_chunk(self, chunk: StreamChunk) -> None:
        self.handle_chunk(chunk)

    def handle_chunk(self, chunk: StreamChunk | dict[str, Any]) -> RoutingDecision:
        """Route one engine chunk; final text for a resolved role goes to translation."""
        self._require(SessionLifecycle.ACTIVE)
        if not isinstance(chunk, StreamChunk):
            chunk = StreamChunk.from_dict(chunk)
        # Only a score taken from the segment being spoken right now stands in for the engine's.
        if chunk.voiceprint_score is None and self.tracker.employee_score is not None:
            chunk.voiceprint_score = self.tracker.employee_score

        decision = self.router.push(chunk)
        if decision.status is not None:
            self._emit_status(decision.status)
        if decision.partial:
            self.channel.emit(EventType.TRANSCRIPT_PARTIAL, text=decision.partial, role=decision.role.value)
        if decision.dispatched:
            self.orchestrator.submit(decision.dispatch_role, decision.text, now=self.clock.now_ms())
        self.state.last_activity = int(time.time() * 1000)
        return decision

    def _emit_status(self, status: str) -> None:
        if status == self._last_status:
            return
        self._last_status = status
        latched = self.router.current_speaker
        self.channel.emit(EventType.STATUS, status=status, latched_role=latched.value if latched else None)

    # --- reporting ---

    def _sync_analytics(self) -> None:
        stats = self.orchestrator.stats()
        self.analytics.update_translations(
            stats["completed"] + stats["failed"], stats["average_processing_time"]
        )

    def snapshot(self) -> SessionSnapshot:
        self._sync_analytics()
        return SessionSnapshot(state=self.state.to_dict(), analytics=self.analytics.to_dict())

    def stats(self) -> dict[str, Any]:
        self._sync_analytics()
        return {
            "session_id": self.session_id,
            "lifecycle": self._lifecycle.value,
            "status": self.router.status,
            "latched_role": self.router.current_speaker.value if self.router.current_speaker else None,
            "speaker_mapping": {k: v.value for k, v in self.router.mapping().items()},
            "segments_emitted": self.segmenter.emitted_count,
            "segments_discarded": self.segmenter.discarded_count,
            "ducking": self.ducking.state.value,
            "voice_prints": self.matcher.stats(),
            "translation": self.orchestrator.stats(),
            "analytics": self.analytics.to_dict(),
            "events_dropped": self.channel.dropped,
        }
