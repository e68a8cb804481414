"""Tests for similarity matching."""

import numpy as np
import pytest

from facepass.matcher import SimilarityMatcher, average_embeddings, similarity
from facepass.types import Reason


class TestSimilarity:
    def test_reflexive(self, make_embedding):
        e = make_embedding(seed=5)
        assert similarity(e, e) == pytest.approx(1.0, abs=1e-6)

    def test_symmetric(self, make_embedding):
        a, b = make_embedding(seed=1), make_embedding(seed=2)
        assert similarity(a, b) == pytest.approx(similarity(b, a))

    def test_clamped_at_zero(self, make_embedding):
        e = make_embedding(seed=3)
        assert similarity(e, -e) == 0.0

    def test_unnormalized_inputs(self):
        assert similarity(np.array([3.0, 0.0]), np.array([5.0, 0.0])) == pytest.approx(1.0)

    def test_dimension_mismatch_raises(self, make_embedding):
        with pytest.raises(ValueError):
            similarity(make_embedding(dim=13), make_embedding(dim=192))

    def test_known_value(self, make_embedding, at_similarity):
        base = make_embedding(seed=7)
        assert similarity(base, at_similarity(base, 0.7)) == pytest.approx(0.7, abs=1e-5)


class TestAverageEmbeddings:
    def test_identical_vectors(self, make_embedding):
        e = make_embedding(seed=4)
        np.testing.assert_allclose(average_embeddings([e, e, e]), e, atol=1e-6)

    def test_three_vectors(self, make_embedding):
        e1, e2, e3 = (make_embedding(seed=s) for s in (1, 2, 3))
        expected = (e1 + e2 + e3) / 3
        expected = expected / np.linalg.norm(expected)
        np.testing.assert_allclose(average_embeddings([e1, e2, e3]), expected, atol=1e-6)

    def test_unit_norm(self, make_embedding):
        out = average_embeddings([make_embedding(seed=s) for s in range(5)])
        assert np.linalg.norm(out) == pytest.approx(1.0, abs=1e-6)

    def test_empty(self):
        assert average_embeddings([]).size == 0

    def test_mixed_dimensions(self, make_embedding):
        with pytest.raises(ValueError):
            average_embeddings([make_embedding(dim=13), make_embedding(dim=192)])


class TestSimilarityMatcher:
    def test_empty_templates(self, make_embedding):
        result = SimilarityMatcher().match(make_embedding(), [])
        assert not result.is_match
        assert result.reason == Reason.NO_ENROLLED_TEMPLATE

    def test_empty_live(self, make_embedding):
        result = SimilarityMatcher().match(np.zeros(0, dtype=np.float32), [make_embedding()])
        assert result.reason == Reason.EXTRACTION_FAILED

    def test_zero_live(self, make_embedding):
        result = SimilarityMatcher().match(np.zeros(192, dtype=np.float32), [make_embedding()])
        assert result.reason == Reason.EXTRACTION_FAILED

    def test_dimension_mismatch(self, make_embedding):
        result = SimilarityMatcher().match(
            make_embedding(dim=192), [make_embedding(dim=192), make_embedding(dim=13)]
        )
        assert not result.is_match
        assert result.reason == Reason.INCOMPATIBLE_TEMPLATE
        assert result.best_index == -1

    def test_match_above_threshold(self, make_embedding, at_similarity):
        stored = make_embedding(seed=1)
        live = at_similarity(stored, 0.70)
        result = SimilarityMatcher(threshold=0.65).match(live, [stored])
        assert result.is_match
        assert result.reason is None
        assert result.best_score == pytest.approx(0.70, abs=1e-5)

    def test_below_threshold(self, make_embedding, at_similarity):
        stored = make_embedding(seed=1)
        live = at_similarity(stored, 0.60)
        result = SimilarityMatcher(threshold=0.65).match(live, [stored])
        assert not result.is_match
        assert result.reason == Reason.BELOW_THRESHOLD
        assert result.best_score == pytest.approx(0.60, abs=1e-5)

    def test_threshold_inclusive(self, make_embedding, at_similarity):
        stored = make_embedding(seed=2)
        live = at_similarity(stored, 0.65)
        score = similarity(live, stored)
        assert SimilarityMatcher(threshold=score).match(live, [stored]).is_match

    def test_best_of_n(self, make_embedding, at_similarity):
        live = make_embedding(seed=9)
        templates = [at_similarity(live, 0.3), at_similarity(live, 0.8, seed=5), at_similarity(live, 0.5)]
        result = SimilarityMatcher(threshold=0.65).match(live, templates)
        assert result.is_match
        assert result.best_index == 1
        assert result.best_score == pytest.approx(0.8, abs=1e-5)
