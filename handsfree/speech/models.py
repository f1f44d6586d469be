"""
Speaker and voice-print structures.

SpeakerSegment: one stretch of continuous speech, in ms on the session clock.
- speaker_id: owner id of the matched voice print, a diarization label, or "unknown".
- is_employee: True when the segment was attributed to an enrolled employee.
- text: filled in later when the speech engine delivers a final transcript.

VoicePrint: immutable enrollment result. `features` is a read-only float32 vector
(N=128 band energies normalized to [0, 1]).
"""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

import numpy as np


class Role(str, Enum):
    EMPLOYEE = "employee"
    CUSTOMER = "customer"
    UNKNOWN = "unknown"


@dataclass
class SpeakerSegment:
    """One speaker segment. Emitted only when end_time - start_time >= min segment duration."""

    speaker_id: str
    start_time: float
    end_time: float
    confidence: float
    is_employee: bool
    text: str | None = None

    @property
    def duration_ms(self) -> float:
        return self.end_time - self.start_time

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DiarizationHint:
    speaker_id: str
    confidence: float


@dataclass
class StreamChunk:
    """
    One message from the streaming speech engine. ts is ms on the session clock.
    Consumed once by the SpeakerRouter.
    """

    ts: float
    partial: str | None = None
    final: str | None = None
    diarization: DiarizationHint | None = None
    voiceprint_score: float | None = None
    is_speech: bool | None = None  # engine-side VAD, when reported

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StreamChunk":
        """Parse engine JSON; accepts camelCase and snake_case keys."""
        diarization = data.get("diarization")
        hint = None
        if isinstance(diarization, dict):
            speaker_id = diarization.get("speakerId", diarization.get("speaker_id"))
            if speaker_id is not None:
                hint = DiarizationHint(
                    speaker_id=str(speaker_id),
                    confidence=float(diarization.get("confidence") or 0.0),
                )
        score = data.get("voiceprintScore", data.get("voiceprint_score"))
        vad = data.get("vad")
        is_speech = vad.get("isSpeech", vad.get("is_speech")) if isinstance(vad, dict) else None
        return cls(
            ts=float(data.get("ts") or 0.0),
            partial=data.get("partial"),
            final=data.get("final"),
            diarization=hint,
            voiceprint_score=float(score) if score is not None else None,
            is_speech=bool(is_speech) if is_speech is not None else None,
        )


@dataclass(frozen=True, eq=False)
class VoicePrint:
    id: str
    owner_id: str
    features: np.ndarray
    confidence: float
    created_at: int = field(default_factory=lambda: int(time.time() * 1000))
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        features = np.array(self.features, dtype=np.float32)
        features.setflags(write=False)
        object.__setattr__(self, "features", features)

    @property
    def role(self) -> Role:
        """Role recorded at enrollment; owner ids prefixed "employee_" count as employee."""
        value = self.metadata.get("role")
        if value in (Role.EMPLOYEE.value, Role.CUSTOMER.value):
            return Role(value)
        if self.owner_id.startswith("employee_"):
            return Role.EMPLOYEE
        return Role.UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "features": [float(x) for x in self.features],
            "confidence": self.confidence,
            "created_at": self.created_at,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VoicePrint":
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            features=np.asarray(data["features"], dtype=np.float32),
            confidence=float(data["confidence"]),
            created_at=int(data.get("created_at") or int(time.time() * 1000)),
            metadata=dict(data.get("metadata") or {}),
        )
