"""
Conversation analytics: speaking time per role and the session quality score.
"""
import pytest

from handsfree.services.analytics import ConversationAnalytics
from handsfree.speech.models import Role, SpeakerSegment


def segment(duration: float) -> SpeakerSegment:
    return SpeakerSegment(speaker_id="x", start_time=0, end_time=duration, confidence=0.9, is_employee=False)


class TestConversationAnalytics:
    def test_speaking_time_by_role(self):
        analytics = ConversationAnalytics(session_id="s1")
        analytics.record_segment(segment(2000), Role.EMPLOYEE)
        analytics.record_segment(segment(1500), Role.CUSTOMER)
        analytics.record_segment(segment(900), Role.UNKNOWN)

        assert analytics.employee_speaking_time == 2000
        assert analytics.customer_speaking_time == 1500

    def test_quality_score(self):
        analytics = ConversationAnalytics(session_id="s1")
        analytics.record_segment(segment(3000), Role.EMPLOYEE)
        analytics.record_segment(segment(1000), Role.CUSTOMER)
        analytics.update_translations(4, 1000.0)

        score = analytics.compute_quality(0.9)

        # 0.3*0.9 + 0.4*(1 - 1000/5000) + 0.3*(1000/4000)
        assert score == pytest.approx(0.27 + 0.32 + 0.075)

    def test_no_translations_no_latency_term(self):
        analytics = ConversationAnalytics(session_id="s1")

        assert analytics.compute_quality(1.0) == pytest.approx(0.3)
        assert analytics.compute_quality(None) == 0.0

    def test_slow_translations_floor_at_zero(self):
        analytics = ConversationAnalytics(session_id="s1")
        analytics.update_translations(1, 9000.0)

        assert analytics.compute_quality(None) == 0.0

    def test_finalize(self):
        analytics = ConversationAnalytics(session_id="s1")
        analytics.record_speaker_change()

        analytics.finalize(0.8)
        body = analytics.to_dict()

        assert body["ended_at"] is not None
        assert body["total_duration"] >= 0
        assert body["speaker_changes"] == 1
        assert body["quality_score"] == pytest.approx(0.24)
