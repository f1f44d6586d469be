"""
Voice-print enrollment from one contiguous speech sample (~6 s).

Features: the sample is split into N equal windows (N=128), RMS per window,
normalized by the loudest window.

Quality (0..1) is computed over the raw window energies:
    0.4 * min(avg_rms * 10, 1)           -- loud enough
  + 0.4 * fraction(rms > min_audio_level) -- voiced most of the time
  + 0.2 * (1 - min(variance, 1))          -- steady level
A VoicePrint is produced only when quality >= ENROLLMENT_QUALITY_THRESHOLD (0.7).
Below it, EnrollmentTooQuiet or EnrollmentInconsistent is raised depending on which
term lost the most; the caller may record again and retry.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import numpy as np

from handsfree.config import get_settings
from handsfree.errors import EnrollmentInconsistent, EnrollmentTooQuiet
from handsfree.speech.features import extract_features, window_rms
from handsfree.speech.models import Role, VoicePrint

logger = logging.getLogger(__name__)

ENROLLMENT_VERSION = "1.0"

# Ambient-noise check (before recording): RMS bounds for a usable room.
_AMBIENT_NOISE_MAX = 0.1


@dataclass
class EnrollmentQuality:
    score: float
    energy: float  # min(avg_rms * 10, 1)
    voiced_ratio: float
    consistency: float  # 1 - min(variance, 1)

    def weakest(self) -> str:
        """Name of the term that cost the most score."""
        losses = {
            "energy": 0.4 * (1.0 - self.energy),
            "voiced_ratio": 0.4 * (1.0 - self.voiced_ratio),
            "consistency": 0.2 * (1.0 - self.consistency),
        }
        return max(losses, key=losses.get)


class VoicePrintEnroller:
    """Builds VoicePrint values from enrollment samples (float32 mono in [-1, 1])."""

    def __init__(
        self,
        n_features: int | None = None,
        min_audio_level: float | None = None,
        quality_threshold: float | None = None,
        sample_rate: int | None = None,
        target_duration_ms: int | None = None,
    ) -> None:
        settings = get_settings()
        self._n_features = n_features if n_features is not None else settings.VOICEPRINT_FEATURES
        self._min_level = min_audio_level if min_audio_level is not None else settings.ENROLLMENT_MIN_AUDIO_LEVEL
        self._threshold = (
            quality_threshold if quality_threshold is not None else settings.ENROLLMENT_QUALITY_THRESHOLD
        )
        self._sample_rate = sample_rate if sample_rate is not None else settings.SAMPLE_RATE
        self._target_ms = (
            target_duration_ms if target_duration_ms is not None else settings.ENROLLMENT_DURATION_MS
        )

    @property
    def quality_threshold(self) -> float:
        return self._threshold

    @property
    def target_samples(self) -> int:
        return int(self._sample_rate * self._target_ms / 1000)

    def assess(self, samples: np.ndarray) -> EnrollmentQuality:
        energies = window_rms(samples, self._n_features)
        energy = min(float(np.mean(energies)) * 10.0, 1.0)
        voiced_ratio = float(np.mean(energies > self._min_level))
        consistency = 1.0 - min(float(np.var(energies)), 1.0)
        score = energy * 0.4 + voiced_ratio * 0.4 + consistency * 0.2
        return EnrollmentQuality(
            score=min(1.0, max(0.0, score)),
            energy=energy,
            voiced_ratio=voiced_ratio,
            consistency=consistency,
        )

    def enroll(self, samples: np.ndarray, owner_id: str, role: Role | str = Role.EMPLOYEE) -> VoicePrint:
        """
        Build a voice print for `owner_id`.
        Raises EnrollmentTooQuiet / EnrollmentInconsistent when quality is below threshold.
        """
        samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        if len(samples) < self._n_features:
            raise EnrollmentTooQuiet(
                f"Enrollment sample too short: {len(samples)} samples", quality=0.0
            )
        duration_ms = len(samples) / self._sample_rate * 1000.0
        if duration_ms < self._target_ms:
            logger.info(
                "Enrollment sample for %s is %.0fms (target %dms)", owner_id, duration_ms, self._target_ms
            )

        quality = self.assess(samples)
        if quality.score < self._threshold:
            message = f"Enrollment quality {quality.score:.2f} below {self._threshold:.2f}"
            logger.info("%s for %s (weakest: %s)", message, owner_id, quality.weakest())
            if quality.weakest() == "consistency":
                raise EnrollmentInconsistent(message + ": keep a steady voice", quality=quality.score)
            raise EnrollmentTooQuiet(message + ": speak louder or closer", quality=quality.score)

        role_value = role.value if isinstance(role, Role) else str(role)
        created_at = int(time.time() * 1000)
        voice_print = VoicePrint(
            id=f"vp_{owner_id}_{created_at}",
            owner_id=owner_id,
            features=extract_features(samples, self._n_features),
            confidence=quality.score,
            created_at=created_at,
            metadata={
                "sample_rate": self._sample_rate,
                "duration_ms": duration_ms,
                "samples_count": len(samples),
                "role": role_value,
                "enrollment_version": ENROLLMENT_VERSION,
            },
        )
        logger.info("Voice print %s created (quality %.2f)", voice_print.id, quality.score)
        return voice_print

    def check_environment(self, samples: np.ndarray) -> list[str]:
        """
        Check a short ambient recording before enrollment.
        Returns a list of human-readable issues (empty = ready to record).
        """
        samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        issues: list[str] = []
        if samples.size == 0 or not np.any(samples):
            issues.append("No audio detected; check microphone permissions")
            return issues
        level = float(np.sqrt(np.mean(samples.astype(np.float64) ** 2)))
        if level > _AMBIENT_NOISE_MAX:
            issues.append("High background noise; move to a quieter location")
        elif level < self._min_level / 10:
            issues.append("Audio level very low; move closer to the microphone")
        return issues
