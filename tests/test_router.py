"""
SpeakerRouter tests: role resolution, speaker mapping, latch and dispatch.
"""
import pytest

from handsfree.speech.models import DiarizationHint, Role, StreamChunk
from handsfree.speech.router import STATUS_READY, SpeakerRouter


def chunk(ts=0.0, final=None, partial=None, speaker=None, conf=0.0, vp=None, is_speech=None):
    hint = DiarizationHint(speaker_id=speaker, confidence=conf) if speaker else None
    return StreamChunk(
        ts=ts, final=final, partial=partial, diarization=hint, voiceprint_score=vp, is_speech=is_speech
    )


@pytest.fixture
def router():
    return SpeakerRouter(
        voiceprint_threshold=0.65,
        silence_threshold_ms=600,
        diarization_confidence=0.7,
        employee_margin=0.05,
    )


class TestLabel:
    def test_voiceprint_score_wins(self, router):
        assert router.label(chunk(vp=0.7, speaker="spk_1", conf=0.9)) is Role.EMPLOYEE
        assert router.mapping() == {}

    def test_confident_new_speaker_is_mapped(self, router):
        assert router.label(chunk(speaker="spk_2", conf=0.8, vp=0.1)) is Role.CUSTOMER
        assert router.mapping() == {"spk_2": Role.CUSTOMER}

        # Later low-confidence chunk keeps the mapping.
        assert router.label(chunk(speaker="spk_2", conf=0.1)) is Role.CUSTOMER

    def test_near_threshold_voiceprint_maps_employee(self, router):
        assert router.label(chunk(speaker="spk_1", conf=0.8, vp=0.61)) is Role.EMPLOYEE
        assert router.label(chunk(speaker="spk_1", conf=0.2, vp=0.0)) is Role.EMPLOYEE

    def test_low_confidence_unknown(self, router):
        assert router.label(chunk(speaker="spk_3", conf=0.5)) is Role.UNKNOWN
        assert router.label(chunk()) is Role.UNKNOWN
        assert "spk_3" not in router.mapping()


class TestPush:
    def test_final_text_dispatched_to_role(self, router):
        decision = router.push(chunk(final=" hello ", vp=0.9))

        assert decision.dispatched
        assert decision.dispatch_role is Role.EMPLOYEE
        assert decision.text == "hello"
        assert decision.latch_changed
        assert decision.status == "Listening: employee"

    def test_unknown_without_latch_is_dropped(self, router):
        decision = router.push(chunk(final="hola"))

        assert decision.dropped
        assert not decision.dispatched
        assert router.current_speaker is None
        assert decision.status == "Listening"

    def test_unknown_rides_on_latched_role(self, router):
        router.push(chunk(ts=0, final="hello", vp=0.9))

        decision = router.push(chunk(ts=100, final="and then"))

        assert decision.dispatch_role is Role.EMPLOYEE

    def test_partial_is_surfaced_not_dispatched(self, router):
        decision = router.push(chunk(partial=" hel ", vp=0.9))

        assert decision.partial == "hel"
        assert not decision.dispatched
        assert decision.text is None

    def test_explicit_role_dispatches_even_when_latch_holds(self, router):
        router.push(chunk(ts=0, final="hello", vp=0.9))

        decision = router.push(chunk(ts=100, final="hola", speaker="spk_2", conf=0.9))

        assert decision.dispatch_role is Role.CUSTOMER
        assert router.current_speaker is Role.EMPLOYEE
        assert decision.status is None

    def test_latch_moves_only_after_silence_threshold(self, router):
        router.push(chunk(ts=0, final="hello", vp=0.9))
        router.push(chunk(ts=900, is_speech=False))

        held = router.push(chunk(ts=1000, speaker="spk_2", conf=0.9))
        assert router.current_speaker is Role.EMPLOYEE
        assert not held.latch_changed

        moved = router.push(chunk(ts=1600, speaker="spk_2", conf=0.9))
        assert router.current_speaker is Role.CUSTOMER
        assert moved.latch_changed
        assert moved.status == "Listening: customer"

    def test_never_latches_unknown(self, router):
        router.push(chunk(ts=0, vp=0.9))

        decision = router.push(chunk(ts=5000))

        assert router.current_speaker is Role.EMPLOYEE
        assert not decision.latch_changed

    def test_reset(self, router):
        router.push(chunk(final="hola", speaker="spk_2", conf=0.9))

        router.reset()

        assert router.status == STATUS_READY
        assert router.current_speaker is None
        assert router.mapping() == {}
