"""
VoicePrintMatcher: in-memory voice-print database and similarity search.

Algorithms (all return a similarity in [0, 1] for non-negative feature vectors):
- cosine: dot / (|a| * |b|); 0 for mismatched lengths or zero norms.
- euclidean: 1 / (1 + distance).
- hybrid: weighted sum of cosine, euclidean and a band-weighted local similarity
  (per feature 1 - |a_i - b_i|, weights favour the lower-middle bands).

Positive results are cached under a coarse key (first 16 features rounded to one
decimal); any database change clears the cache.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Iterable, Literal

import numpy as np

from handsfree.config import get_settings
from handsfree.errors import InvalidVoicePrint, NoVoicePrintMatch
from handsfree.speech.models import VoicePrint

logger = logging.getLogger(__name__)

Algorithm = Literal["cosine", "euclidean", "hybrid"]

_CACHE_KEY_FEATURES = 16
_MIN_FEATURES = 64
_MIN_CONFIDENCE = 0.3


@dataclass
class VoicePrintMatch:
    voice_print: VoicePrint
    score: float
    algorithm: str

    @property
    def owner_id(self) -> str:
        return self.voice_print.owner_id


def default_feature_weights(n: int = 128) -> np.ndarray:
    """Band weights: 1.2 for the first quarter, 1.5 second, 1.0 third, 0.8 last."""
    weights = np.empty(n, dtype=np.float64)
    for i in range(n):
        if i < n // 4:
            weights[i] = 1.2
        elif i < n // 2:
            weights[i] = 1.5
        elif i < 3 * n // 4:
            weights[i] = 1.0
        else:
            weights[i] = 0.8
    return weights


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    if a.shape != b.shape or a.size == 0:
        return 0.0
    norm = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


def euclidean_similarity(a: np.ndarray, b: np.ndarray) -> float:
    if a.shape != b.shape or a.size == 0:
        return 0.0
    return 1.0 / (1.0 + float(np.linalg.norm(a - b)))


def weighted_similarity(a: np.ndarray, b: np.ndarray, weights: np.ndarray) -> float:
    if a.shape != b.shape or a.size == 0:
        return 0.0
    if weights.shape != a.shape:
        weights = np.ones_like(a, dtype=np.float64)
    local = 1.0 - np.abs(a - b)
    total = float(weights.sum())
    if total == 0.0:
        return 0.0
    return float(np.dot(local, weights) / total)


class VoicePrintMatcher:
    """Owns the voice-print database for one session (owner_id -> VoicePrint)."""

    def __init__(
        self,
        algorithm: Algorithm | None = None,
        confidence_threshold: float | None = None,
        max_candidates: int | None = None,
        cache_size: int | None = None,
        hybrid_weights: tuple[float, float, float] | None = None,
    ) -> None:
        settings = get_settings()
        self._algorithm: str = algorithm or settings.MATCH_ALGORITHM
        self._threshold = (
            confidence_threshold if confidence_threshold is not None else settings.MATCH_CONFIDENCE_THRESHOLD
        )
        self._max_candidates = max_candidates if max_candidates is not None else settings.MATCH_MAX_CANDIDATES
        self._cache_size = cache_size if cache_size is not None else settings.MATCH_CACHE_SIZE
        self._hybrid_weights = hybrid_weights or (
            settings.HYBRID_COSINE_WEIGHT,
            settings.HYBRID_EUCLIDEAN_WEIGHT,
            settings.HYBRID_WEIGHTED_WEIGHT,
        )
        self._feature_weights = default_feature_weights(settings.VOICEPRINT_FEATURES)
        self._db: dict[str, VoicePrint] = {}
        self._cache: OrderedDict[tuple[int, ...], VoicePrintMatch] = OrderedDict()
        self._cache_hits = 0
        self._lookups = 0

    @property
    def algorithm(self) -> str:
        return self._algorithm

    @property
    def confidence_threshold(self) -> float:
        return self._threshold

    def __len__(self) -> int:
        return len(self._db)

    def __contains__(self, owner_id: object) -> bool:
        return owner_id in self._db

    # --- database ---

    def add_voice_print(self, voice_print: VoicePrint) -> None:
        """Register (or replace) the voice print for its owner."""
        self._db[voice_print.owner_id] = voice_print
        self._cache.clear()
        logger.info("Voice print added for %s (%d enrolled)", voice_print.owner_id, len(self._db))

    def remove_voice_print(self, owner_id: str) -> bool:
        """Remove owner's voice print. Returns True if it existed."""
        if owner_id not in self._db:
            return False
        del self._db[owner_id]
        self._cache.clear()
        logger.info("Voice print removed for %s", owner_id)
        return True

    def get_voice_print(self, owner_id: str) -> VoicePrint | None:
        return self._db.get(owner_id)

    def voice_prints(self) -> list[VoicePrint]:
        return list(self._db.values())

    def clear(self) -> None:
        self._db.clear()
        self._cache.clear()

    # --- scoring ---

    def similarity(self, a: np.ndarray, b: np.ndarray, algorithm: str | None = None) -> float:
        algorithm = algorithm or self._algorithm
        a = np.asarray(a, dtype=np.float64)
        b = np.asarray(b, dtype=np.float64)
        if algorithm == "cosine":
            return cosine_similarity(a, b)
        if algorithm == "euclidean":
            return euclidean_similarity(a, b)
        if algorithm == "hybrid":
            if a.shape != b.shape or a.size == 0:
                return 0.0
            w_cos, w_euc, w_weighted = self._hybrid_weights
            return (
                w_cos * cosine_similarity(a, b)
                + w_euc * euclidean_similarity(a, b)
                + w_weighted * weighted_similarity(a, b, self._feature_weights)
            )
        raise ValueError(f"Unknown match algorithm: {algorithm}")

    def _cache_key(self, features: np.ndarray) -> tuple[int, ...]:
        head = np.asarray(features[:_CACHE_KEY_FEATURES], dtype=np.float64)
        return tuple(int(round(x * 10)) for x in head)

    def find_best_match(self, features: np.ndarray) -> VoicePrintMatch | None:
        """Best voice print scoring >= confidence threshold, or None."""
        self._lookups += 1
        features = np.asarray(features, dtype=np.float32).reshape(-1)
        if not self._db or features.size == 0:
            return None
        key = self._cache_key(features)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache_hits += 1
            return cached

        best: VoicePrintMatch | None = None
        for voice_print in self._db.values():
            score = self.similarity(features, voice_print.features)
            if best is None or score > best.score:
                best = VoicePrintMatch(voice_print=voice_print, score=score, algorithm=self._algorithm)
        if best is None or best.score < self._threshold:
            return None

        self._cache[key] = best
        while len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)
        return best

    def best_score(self, features: np.ndarray) -> float:
        """Highest raw similarity against any enrolled print (0.0 when empty)."""
        features = np.asarray(features, dtype=np.float32).reshape(-1)
        scores = [self.similarity(features, vp.features) for vp in self._db.values()]
        return max(scores, default=0.0)

    def require_match(self, features: np.ndarray) -> VoicePrintMatch:
        """Like find_best_match, but raises NoVoicePrintMatch on a miss."""
        match = self.find_best_match(features)
        if match is None:
            raise NoVoicePrintMatch(best_score=self.best_score(features))
        return match

    def find_matches(self, features: np.ndarray, max_results: int | None = None) -> list[VoicePrintMatch]:
        """All prints scoring >= threshold, best first, at most max_results (default MATCH_MAX_CANDIDATES)."""
        limit = max_results if max_results is not None else self._max_candidates
        features = np.asarray(features, dtype=np.float32).reshape(-1)
        matches = [
            VoicePrintMatch(voice_print=vp, score=self.similarity(features, vp.features), algorithm=self._algorithm)
            for vp in self._db.values()
        ]
        matches = [m for m in matches if m.score >= self._threshold]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:limit]

    def update_feature_weights(self, weights: Iterable[float]) -> None:
        """Replace the band weights used by the hybrid algorithm."""
        new_weights = np.asarray(list(weights), dtype=np.float64)
        if new_weights.shape != self._feature_weights.shape:
            raise ValueError(
                f"Expected {self._feature_weights.size} weights, got {new_weights.size}"
            )
        self._feature_weights = new_weights
        self._cache.clear()

    # --- validation / import / export ---

    @staticmethod
    def validate_voice_print(voice_print: VoicePrint) -> list[str]:
        """Return a list of problems (empty = valid)."""
        issues: list[str] = []
        features = voice_print.features
        if features.size == 0:
            issues.append("Missing features")
            return issues
        if features.size < _MIN_FEATURES:
            issues.append(f"Too few features: {features.size} < {_MIN_FEATURES}")
        if not np.all(np.isfinite(features)):
            issues.append("Features contain non-finite values")
        elif float(np.var(features)) == 0.0:
            issues.append("Features have no variance")
        if voice_print.confidence < _MIN_CONFIDENCE:
            issues.append(f"Confidence too low: {voice_print.confidence:.2f}")
        return issues

    def export_voice_prints(self) -> list[dict[str, Any]]:
        return [vp.to_dict() for vp in self._db.values()]

    def import_voice_prints(self, items: Iterable[dict[str, Any]]) -> int:
        """
        Import serialized voice prints. Invalid entries are skipped with a warning.
        Returns number imported.
        """
        imported = 0
        for item in items:
            try:
                voice_print = VoicePrint.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed voice print: %s", e)
                continue
            issues = self.validate_voice_print(voice_print)
            if issues:
                logger.warning("Skipping voice print %s: %s", voice_print.id, InvalidVoicePrint(issues))
                continue
            self.add_voice_print(voice_print)
            imported += 1
        return imported

    def stats(self) -> dict[str, Any]:
        prints = list(self._db.values())
        return {
            "total_voice_prints": len(prints),
            "average_confidence": (
                sum(vp.confidence for vp in prints) / len(prints) if prints else 0.0
            ),
            "algorithm": self._algorithm,
            "confidence_threshold": self._threshold,
            "cache_size": len(self._cache),
            "cache_hit_rate": self._cache_hits / self._lookups if self._lookups else 0.0,
        }
