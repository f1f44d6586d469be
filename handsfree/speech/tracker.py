"""
Speaker tracking for the open segment.

Frames of the segment currently open in the Segmenter are buffered here; once
IDENTIFY_MIN_FRAMES frames are in (and every IDENTIFY_MIN_FRAMES frames after that)
the buffered audio is reduced to a feature vector and scored against the session's
voice prints. The open segment's identification is stamped onto it when the
Segmenter closes it, and nothing carries over into the next segment.

- A miss (NoVoicePrintMatch) is absorbed: the segment stays "unknown".
- employee_score only ever reflects prints enrolled with the employee role.
- Labels are the voice print owner ids; there is no identity inference beyond
  enrolled prints.
- The buffer is bounded (IDENTIFY_MAX_FRAMES); older frames fall off.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

import numpy as np

from handsfree.config import get_settings
from handsfree.errors import NoVoicePrintMatch
from handsfree.speech.features import extract_features
from handsfree.speech.matcher import VoicePrintMatcher
from handsfree.speech.models import Role, SpeakerSegment

logger = logging.getLogger(__name__)

UNKNOWN_SPEAKER = "unknown"


@dataclass
class SpeakerChange:
    previous: str
    current: str
    confidence: float
    is_employee: bool


class SpeakerTracker:
    """Identifies the speaker of the open segment against a VoicePrintMatcher."""

    def __init__(
        self,
        matcher: VoicePrintMatcher,
        min_frames: int | None = None,
        max_frames: int | None = None,
    ) -> None:
        settings = get_settings()
        self._matcher = matcher
        self._min_frames = max(1, min_frames if min_frames is not None else settings.IDENTIFY_MIN_FRAMES)
        size = max_frames if max_frames is not None else settings.IDENTIFY_MAX_FRAMES
        self._frames: deque[np.ndarray] = deque(maxlen=max(self._min_frames, size))
        self._frames_since_identify = 0
        self._n_features = settings.VOICEPRINT_FEATURES

        # Last speaker seen across segments; drives speaker-change events.
        self.current_speaker: str = UNKNOWN_SPEAKER
        self.confidence: float = 0.0
        self.is_employee: bool = False

        # Identity of the open segment only; stamped by finish().
        self._segment_speaker: str = UNKNOWN_SPEAKER
        self._segment_confidence: float = 0.0
        self._segment_is_employee: bool = False
        # Best score against employee prints for the open segment, None until scored.
        self.employee_score: float | None = None

    @property
    def buffered_frames(self) -> int:
        return len(self._frames)

    @property
    def segment_speaker(self) -> str:
        return self._segment_speaker

    def begin_segment(self) -> None:
        """Forget everything learned about the previous segment."""
        self._frames.clear()
        self._frames_since_identify = 0
        self._segment_speaker = UNKNOWN_SPEAKER
        self._segment_confidence = 0.0
        self._segment_is_employee = False
        self.employee_score = None

    def append(self, frame: np.ndarray) -> SpeakerChange | None:
        """Buffer one frame of the open segment; may re-identify. Returns a change, if any."""
        self._frames.append(np.asarray(frame, dtype=np.float32))
        self._frames_since_identify += 1
        if len(self._frames) < self._min_frames or self._frames_since_identify < self._min_frames:
            return None
        self._frames_since_identify = 0
        return self.identify()

    def identify(self) -> SpeakerChange | None:
        if not self._frames or len(self._matcher) == 0:
            return None
        features = extract_features(np.concatenate(list(self._frames)), self._n_features)
        self.employee_score = self._employee_score(features)
        try:
            match = self._matcher.require_match(features)
        except NoVoicePrintMatch as e:
            logger.debug("No voice print match (best %.3f)", e.best_score)
            return None
        is_employee = match.voice_print.role is Role.EMPLOYEE
        self._segment_speaker = match.owner_id
        self._segment_confidence = match.score
        self._segment_is_employee = is_employee
        return self._set_speaker(match.owner_id, match.score, is_employee)

    def _employee_score(self, features: np.ndarray) -> float:
        scores = [
            self._matcher.similarity(features, vp.features)
            for vp in self._matcher.voice_prints()
            if vp.role is Role.EMPLOYEE
        ]
        return max(scores, default=0.0)

    def force_speaker_change(self, speaker_id: str, is_employee: bool | None = None) -> SpeakerChange | None:
        """Manual override from the UI."""
        if is_employee is None:
            voice_print = self._matcher.get_voice_print(speaker_id)
            is_employee = voice_print is not None and voice_print.role is Role.EMPLOYEE
        self._segment_speaker = speaker_id
        self._segment_confidence = 1.0
        self._segment_is_employee = is_employee
        return self._set_speaker(speaker_id, 1.0, is_employee)

    def _set_speaker(self, speaker_id: str, confidence: float, is_employee: bool) -> SpeakerChange | None:
        previous = self.current_speaker
        self.current_speaker = speaker_id
        self.confidence = confidence
        self.is_employee = is_employee
        if previous == speaker_id:
            return None
        return SpeakerChange(previous=previous, current=speaker_id, confidence=confidence, is_employee=is_employee)

    def finish(self, segment: SpeakerSegment) -> SpeakerSegment:
        """Stamp the open segment's identification onto it and start afresh."""
        segment.speaker_id = self._segment_speaker
        segment.confidence = self._segment_confidence
        segment.is_employee = self._segment_is_employee
        self.begin_segment()
        return segment

    def reset(self) -> None:
        self.begin_segment()
        self.current_speaker = UNKNOWN_SPEAKER
        self.confidence = 0.0
        self.is_employee = False
