"""
Voice-print matcher tests: similarity algorithms, threshold, cache, validation,
import/export.
"""
import numpy as np
import pytest

from handsfree.errors import NoVoicePrintMatch
from handsfree.speech.matcher import (
    VoicePrintMatcher,
    cosine_similarity,
    default_feature_weights,
    euclidean_similarity,
)
from handsfree.speech.models import VoicePrint


def rising() -> np.ndarray:
    return np.linspace(0.0, 1.0, 128, dtype=np.float32)


def falling() -> np.ndarray:
    return np.linspace(1.0, 0.0, 128, dtype=np.float32)


def make_vp(owner_id: str, features: np.ndarray, confidence: float = 0.9, role: str = "employee") -> VoicePrint:
    return VoicePrint(
        id=f"vp_{owner_id}_1",
        owner_id=owner_id,
        features=features,
        confidence=confidence,
        metadata={"role": role},
    )


class TestSimilarity:
    def test_identical_vectors(self):
        matcher = VoicePrintMatcher(algorithm="hybrid")
        a = rising()

        assert matcher.similarity(a, a, "cosine") == pytest.approx(1.0)
        assert matcher.similarity(a, a, "euclidean") == pytest.approx(1.0)
        assert matcher.similarity(a, a, "hybrid") == pytest.approx(1.0)

    def test_length_mismatch_scores_zero(self):
        matcher = VoicePrintMatcher()
        a = rising()

        assert cosine_similarity(a, a[:64]) == 0.0
        assert euclidean_similarity(a, a[:64]) == 0.0
        assert matcher.similarity(a, a[:64], "hybrid") == 0.0

    def test_zero_norm_cosine_is_zero(self):
        assert cosine_similarity(np.zeros(128), rising()) == 0.0

    def test_euclidean_formula(self):
        a = np.zeros(4)
        b = np.array([3.0, 4.0, 0.0, 0.0])

        assert euclidean_similarity(a, b) == pytest.approx(1 / 6)

    def test_band_weights(self):
        weights = default_feature_weights(128)

        assert weights[0] == 1.2
        assert weights[40] == 1.5
        assert weights[80] == 1.0
        assert weights[127] == 0.8

    def test_unknown_algorithm(self):
        with pytest.raises(ValueError):
            VoicePrintMatcher().similarity(rising(), rising(), "dtw")


class TestMatching:
    def test_best_match_above_threshold(self):
        matcher = VoicePrintMatcher(confidence_threshold=0.65)
        matcher.add_voice_print(make_vp("alice", rising()))
        matcher.add_voice_print(make_vp("bob", falling(), role="customer"))

        match = matcher.find_best_match(rising() + 0.01)

        assert match is not None
        assert match.owner_id == "alice"
        assert match.score > 0.9

    def test_no_match_below_threshold(self):
        matcher = VoicePrintMatcher(confidence_threshold=0.65)
        matcher.add_voice_print(make_vp("alice", rising()))

        assert matcher.find_best_match(falling()) is None
        with pytest.raises(NoVoicePrintMatch) as exc_info:
            matcher.require_match(falling())
        assert exc_info.value.best_score < 0.65

    def test_empty_database(self):
        assert VoicePrintMatcher().find_best_match(rising()) is None

    def test_cache_hit_and_invalidation(self):
        matcher = VoicePrintMatcher()
        matcher.add_voice_print(make_vp("alice", rising()))

        first = matcher.find_best_match(rising())
        second = matcher.find_best_match(rising())

        assert first is second
        assert matcher.stats()["cache_size"] == 1
        assert matcher.stats()["cache_hit_rate"] == pytest.approx(0.5)

        matcher.add_voice_print(make_vp("bob", falling()))
        assert matcher.stats()["cache_size"] == 0

    def test_cache_is_bounded(self):
        matcher = VoicePrintMatcher(cache_size=2, confidence_threshold=0.0)
        matcher.add_voice_print(make_vp("alice", rising()))
        for shift in (0.0, 0.2, 0.4):
            matcher.find_best_match(rising() * (1 - shift) + shift)

        assert matcher.stats()["cache_size"] == 2

    def test_find_matches_sorted_and_limited(self):
        matcher = VoicePrintMatcher(confidence_threshold=0.5)
        matcher.add_voice_print(make_vp("a", rising()))
        matcher.add_voice_print(make_vp("b", rising() * 0.9 + 0.05))
        matcher.add_voice_print(make_vp("c", falling()))

        matches = matcher.find_matches(rising(), max_results=2)

        assert [m.owner_id for m in matches] == ["a", "b"]
        assert matches[0].score >= matches[1].score

    def test_remove_voice_print(self):
        matcher = VoicePrintMatcher()
        matcher.add_voice_print(make_vp("alice", rising()))

        assert matcher.remove_voice_print("alice")
        assert not matcher.remove_voice_print("alice")
        assert matcher.find_best_match(rising()) is None

    def test_update_feature_weights(self):
        matcher = VoicePrintMatcher()
        matcher.update_feature_weights(np.ones(128))

        with pytest.raises(ValueError):
            matcher.update_feature_weights([1.0, 2.0])


class TestValidationAndPersistence:
    def test_valid_voice_print(self):
        assert VoicePrintMatcher.validate_voice_print(make_vp("alice", rising())) == []

    def test_invalid_voice_prints(self):
        short = make_vp("a", rising()[:32])
        flat = make_vp("b", np.full(128, 0.5))
        weak = make_vp("c", rising(), confidence=0.1)
        nan = make_vp("d", np.where(np.arange(128) == 3, np.nan, 0.5))

        assert any("Too few" in i for i in VoicePrintMatcher.validate_voice_print(short))
        assert any("variance" in i for i in VoicePrintMatcher.validate_voice_print(flat))
        assert any("Confidence" in i for i in VoicePrintMatcher.validate_voice_print(weak))
        assert any("non-finite" in i for i in VoicePrintMatcher.validate_voice_print(nan))

    def test_export_then_import(self):
        source = VoicePrintMatcher()
        source.add_voice_print(make_vp("alice", rising()))
        source.add_voice_print(make_vp("bob", falling(), role="customer"))
        exported = source.export_voice_prints()

        target = VoicePrintMatcher()
        imported = target.import_voice_prints(exported + [{"id": "broken"}, make_vp("x", rising()[:10]).to_dict()])

        assert imported == 2
        assert len(target) == 2
        assert np.allclose(target.get_voice_print("alice").features, rising())
        assert target.stats()["total_voice_prints"] == 2
