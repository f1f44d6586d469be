"""
Error taxonomy for the interpreter core.

Recoverable errors (NoVoicePrintMatch, TranslationError) are absorbed inside the
session: a miss degrades to the "unknown" role, a failed translation falls back to
the local backend. AudioDeviceUnavailable is fatal to the session and is surfaced
to the caller. The HTTP layer maps these to status codes in main.py.
"""
from __future__ import annotations


class HandsFreeError(Exception):
    """Base class for all errors raised by this package."""


# --- Enrollment ---


class EnrollmentError(HandsFreeError):
    """Enrollment could not produce a voice print."""


class EnrollmentQualityTooLow(EnrollmentError):
    """Sample quality below the enrollment threshold. Caller may retry with a new sample."""

    def __init__(self, message: str, quality: float = 0.0) -> None:
        super().__init__(message)
        self.quality = quality


class EnrollmentTooQuiet(EnrollmentQualityTooLow):
    """Not enough voiced energy in the sample (silence, far mic, too short)."""


class EnrollmentInconsistent(EnrollmentQualityTooLow):
    """Energy varies too much across the sample (bursts, clipping, background noise)."""


# --- Matching ---


class NoVoicePrintMatch(HandsFreeError):
    """No enrolled voice print scored above the match threshold."""

    def __init__(self, best_score: float = 0.0) -> None:
        super().__init__(f"No voice print matched (best score {best_score:.3f})")
        self.best_score = best_score


class InvalidVoicePrint(HandsFreeError):
    """A voice print failed validation on import or registration."""

    def __init__(self, issues: list[str]) -> None:
        super().__init__("Invalid voice print: " + "; ".join(issues))
        self.issues = issues


# --- Translation ---


class TranslationError(HandsFreeError):
    """Translation request failed. The orchestrator recovers with the fallback backend."""


class TranslationTimeout(TranslationError):
    """Translation backend did not answer in time."""


class TranslationBackendError(TranslationError):
    """Translation backend answered with an error or an unusable payload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# --- Audio / session ---


class AudioDeviceUnavailable(HandsFreeError):
    """Capture or playback device cannot be used. Fatal to the session."""


class SessionStateError(HandsFreeError):
    """Operation not allowed in the session's current lifecycle state."""


class SessionNotFound(HandsFreeError):
    """No session with the given id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id
