"""
SpeakerTracker tests: identification every N frames, misses, manual override.
"""
import numpy as np

from handsfree.speech.features import extract_features
from handsfree.speech.matcher import VoicePrintMatcher
from handsfree.speech.models import SpeakerSegment, VoicePrint
from handsfree.speech.tracker import UNKNOWN_SPEAKER, SpeakerTracker

from audio_helpers import frames, modulated_tone, silence


def tracker_with_alice(role="employee"):
    audio = modulated_tone(2000)
    head = frames(audio)[:5]
    voice_print = VoicePrint(
        id="vp_alice_1",
        owner_id="alice",
        features=extract_features(np.concatenate(head)),
        confidence=0.9,
        metadata={"role": role},
    )
    matcher = VoicePrintMatcher(confidence_threshold=0.65)
    matcher.add_voice_print(voice_print)
    return SpeakerTracker(matcher, min_frames=5, max_frames=100), head


class TestSpeakerTracker:
    def test_identifies_after_min_frames(self):
        tracker, head = tracker_with_alice()

        changes = [tracker.append(frame) for frame in head]

        assert changes[:4] == [None] * 4
        change = changes[4]
        assert change is not None
        assert change.previous == UNKNOWN_SPEAKER
        assert change.current == "alice"
        assert change.is_employee
        assert tracker.employee_score > 0.99

    def test_same_speaker_again_is_not_a_change(self):
        tracker, head = tracker_with_alice()
        for frame in head:
            tracker.append(frame)
        tracker.begin_segment()

        assert all(tracker.append(frame) is None for frame in head)
        assert tracker.current_speaker == "alice"

    def test_miss_keeps_unknown(self):
        tracker, _ = tracker_with_alice()
        for frame in frames(silence(500)):
            assert tracker.append(frame) is None

        assert tracker.current_speaker == UNKNOWN_SPEAKER
        assert tracker.employee_score < 0.65

    def test_no_voice_prints_skips_identification(self):
        tracker = SpeakerTracker(VoicePrintMatcher(), min_frames=5)
        for frame in frames(modulated_tone(500)):
            assert tracker.append(frame) is None

        assert tracker.identify() is None

    def test_buffer_is_bounded(self):
        tracker = SpeakerTracker(VoicePrintMatcher(), min_frames=2, max_frames=3)
        for frame in frames(modulated_tone(1000)):
            tracker.append(frame)

        assert tracker.buffered_frames == 3

    def test_finish_stamps_segment(self):
        tracker, head = tracker_with_alice()
        for frame in head:
            tracker.append(frame)
        segment = SpeakerSegment(
            speaker_id=UNKNOWN_SPEAKER, start_time=0, end_time=2000, confidence=0.0, is_employee=False
        )

        tracker.finish(segment)

        assert segment.speaker_id == "alice"
        assert segment.is_employee
        assert segment.confidence > 0.99
        assert tracker.buffered_frames == 0

    def test_force_speaker_change(self):
        tracker, _ = tracker_with_alice()

        change = tracker.force_speaker_change("alice")

        assert change is not None
        assert change.is_employee
        assert change.confidence == 1.0
        assert tracker.force_speaker_change("alice") is None
        assert not tracker.force_speaker_change("guest").is_employee

    def test_reset(self):
        tracker, head = tracker_with_alice()
        for frame in head:
            tracker.append(frame)

        tracker.reset()

        assert tracker.current_speaker == UNKNOWN_SPEAKER
        assert tracker.employee_score is None
        assert tracker.buffered_frames == 0

    def test_finish_forgets_the_segment(self):
        tracker, head = tracker_with_alice()
        for frame in head:
            tracker.append(frame)
        segment = SpeakerSegment(
            speaker_id=UNKNOWN_SPEAKER, start_time=0, end_time=2000, confidence=0.0, is_employee=False
        )

        tracker.finish(segment)

        assert tracker.employee_score is None
        assert tracker.segment_speaker == UNKNOWN_SPEAKER
        # The last known speaker survives for change detection.
        assert tracker.current_speaker == "alice"

    def test_missed_segment_after_a_hit_is_unknown(self):
        tracker, head = tracker_with_alice()
        for frame in head:
            tracker.append(frame)
        tracker.finish(SpeakerSegment(UNKNOWN_SPEAKER, 0, 2000, 0.0, False))

        for frame in frames(silence(500)):
            tracker.append(frame)
        segment = tracker.finish(SpeakerSegment(UNKNOWN_SPEAKER, 3000, 4600, 0.0, False))

        assert segment.speaker_id == UNKNOWN_SPEAKER
        assert not segment.is_employee
        assert segment.confidence == 0.0

    def test_customer_print_gives_no_employee_score(self):
        tracker, head = tracker_with_alice(role="customer")

        changes = [tracker.append(frame) for frame in head]

        assert changes[4].current == "alice"
        assert not changes[4].is_employee
        assert tracker.employee_score == 0.0
