"""
SpeakerRouter: decides which role (employee / customer / unknown) each chunk of
engine output belongs to, and whether its final text goes to translation.

Role resolution, first rule that applies:
1. voiceprint_score >= VOICEPRINT_THRESHOLD -> employee (diarization ignored).
2. diarization speaker_id already mapped -> the mapped role.
3. diarization confidence >= ROUTER_DIARIZATION_CONFIDENCE -> map the new speaker:
   employee if voiceprint_score >= threshold - ROUTER_EMPLOYEE_MARGIN, else customer.
4. unknown.

Latch (hysteresis for the "who is talking" status): the latched role only moves when
nothing is latched yet or more than SILENCE_THRESHOLD_MS has passed since the last
chunk the engine flagged as silence. It never latches "unknown".

Only final text is dispatched. Unknown-role text rides on the latched role, or is
dropped when nothing is latched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from handsfree.config import get_settings
from handsfree.speech.models import Role, StreamChunk

logger = logging.getLogger(__name__)

STATUS_READY = "Ready"


@dataclass
class RoutingDecision:
    """Result of pushing one chunk. dispatch_role/text are set when final text must be translated."""

    role: Role
    latched_role: Role | None
    status: str | None = None  # set when the latch was evaluated
    latch_changed: bool = False
    dispatch_role: Role | None = None
    text: str | None = None
    partial: str | None = None
    dropped: bool = False

    @property
    def dispatched(self) -> bool:
        return self.dispatch_role is not None


class SpeakerRouter:
    def __init__(
        self,
        voiceprint_threshold: float | None = None,
        silence_threshold_ms: int | None = None,
        diarization_confidence: float | None = None,
        employee_margin: float | None = None,
    ) -> None:
        settings = get_settings()
        self._vp_threshold = (
            voiceprint_threshold if voiceprint_threshold is not None else settings.VOICEPRINT_THRESHOLD
        )
        self._silence_ms = (
            silence_threshold_ms if silence_threshold_ms is not None else settings.SILENCE_THRESHOLD_MS
        )
        self._diarization_confidence = (
            diarization_confidence
            if diarization_confidence is not None
            else settings.ROUTER_DIARIZATION_CONFIDENCE
        )
        self._margin = employee_margin if employee_margin is not None else settings.ROUTER_EMPLOYEE_MARGIN
        self._map: dict[str, Role] = {}
        self._latched: Role | None = None
        self._last_silence_end: float = 0.0
        self.status: str = STATUS_READY

    @property
    def current_speaker(self) -> Role | None:
        """Latched role, or None before anyone was recognised."""
        return self._latched

    def mapping(self) -> dict[str, Role]:
        return dict(self._map)

    def label(self, chunk: StreamChunk) -> Role:
        """Resolve the role for one chunk; may persist a new speaker mapping."""
        score = chunk.voiceprint_score if chunk.voiceprint_score is not None else 0.0
        hint = chunk.diarization

        if score >= self._vp_threshold:
            return Role.EMPLOYEE
        if hint is not None and hint.speaker_id in self._map:
            return self._map[hint.speaker_id]
        if hint is not None and hint.confidence >= self._diarization_confidence:
            role = Role.EMPLOYEE if score >= self._vp_threshold - self._margin else Role.CUSTOMER
            self._map[hint.speaker_id] = role
            logger.info(
                "Mapped speaker %s to %s (diarization %.2f, voiceprint %.2f)",
                hint.speaker_id,
                role.value,
                hint.confidence,
                score,
            )
            return role
        return Role.UNKNOWN

    def push(self, chunk: StreamChunk) -> RoutingDecision:
        role = self.label(chunk)
        now = chunk.ts
        decision = RoutingDecision(role=role, latched_role=self._latched)

        if self._latched is None or (now - self._last_silence_end) > self._silence_ms:
            if role is not Role.UNKNOWN and role is not self._latched:
                self._latched = role
                decision.latch_changed = True
            self.status = f"Listening: {self._latched.value}" if self._latched else "Listening"
            decision.status = self.status
            decision.latched_role = self._latched

        text = (chunk.final or "").strip()
        if text:
            if role is not Role.UNKNOWN:
                decision.dispatch_role = role
            elif self._latched is not None:
                decision.dispatch_role = self._latched
            else:
                decision.dropped = True
                logger.debug("Dropped final text from unknown speaker with no latched role")
            if decision.dispatch_role is not None:
                decision.text = text
        elif chunk.partial and chunk.partial.strip():
            decision.partial = chunk.partial.strip()

        if chunk.is_speech is False:
            self._last_silence_end = now
        return decision

    def reset(self) -> None:
        self._map.clear()
        self._latched = None
        self._last_silence_end = 0.0
        self.status = STATUS_READY
