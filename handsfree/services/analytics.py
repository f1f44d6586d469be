"""
Conversation analytics for one session.

Counts speaker changes and translations, keeps a running average of translation
time and per-role speaking time (from emitted segments), and derives a quality
score when the session ends:

    0.3 * employee voice-print confidence
  + 0.4 * max(0, 1 - avg_translation_ms / 5000)   (only once something was translated)
  + 0.3 * min(employee, customer) / (employee + customer) speaking time
capped at 1.
"""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any

from handsfree.speech.models import Role, SpeakerSegment

# Average translation time (ms) at which the latency term reaches 0.
_SLOW_TRANSLATION_MS = 5000.0


@dataclass
class ConversationAnalytics:
    session_id: str
    started_at: int = field(default_factory=lambda: int(time.time() * 1000))
    ended_at: int | None = None
    total_duration: int = 0  # ms
    speaker_changes: int = 0
    translations_count: int = 0
    average_translation_time: float = 0.0  # ms
    employee_speaking_time: float = 0.0  # ms
    customer_speaking_time: float = 0.0  # ms
    languages: list[str] = field(default_factory=list)
    quality_score: float = 0.0

    def record_speaker_change(self) -> None:
        self.speaker_changes += 1

    def record_segment(self, segment: SpeakerSegment, role: Role) -> None:
        if role is Role.EMPLOYEE:
            self.employee_speaking_time += segment.duration_ms
        elif role is Role.CUSTOMER:
            self.customer_speaking_time += segment.duration_ms

    def update_translations(self, count: int, average_ms: float) -> None:
        """Copy translation totals from the orchestrator."""
        self.translations_count = count
        self.average_translation_time = average_ms

    def compute_quality(self, voice_print_confidence: float | None) -> float:
        score = 0.0
        if voice_print_confidence is not None:
            score += voice_print_confidence * 0.3
        if self.translations_count > 0:
            score += max(0.0, 1.0 - self.average_translation_time / _SLOW_TRANSLATION_MS) * 0.4
        speaking = self.employee_speaking_time + self.customer_speaking_time
        if speaking > 0:
            balance = min(self.employee_speaking_time, self.customer_speaking_time) / speaking
            score += balance * 0.3
        self.quality_score = min(1.0, score)
        return self.quality_score

    def finalize(self, voice_print_confidence: float | None) -> None:
        self.ended_at = int(time.time() * 1000)
        self.total_duration = self.ended_at - self.started_at
        self.compute_quality(voice_print_confidence)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
