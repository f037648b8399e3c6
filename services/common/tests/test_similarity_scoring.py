"""Tests for cosine similarity scoring."""

from unittest.mock import patch

import numpy as np
import pytest

from services.common.similarity import (
    DimensionMismatchError,
    SimilarityResult,
    UndefinedSimilarityError,
    cosine_similarity,
    score_all,
)


class TestCosineSimilarity:
    """Pairwise scores."""

    @pytest.mark.unit
    def test_orthogonal_vectors_score_zero(self):
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    @pytest.mark.unit
    def test_identical_vectors_score_one(self):
        vector = np.random.default_rng(7).normal(size=384)

        assert cosine_similarity(vector, vector) == pytest.approx(1.0, abs=1e-6)

    @pytest.mark.unit
    def test_opposite_vectors_score_minus_one(self):
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    @pytest.mark.unit
    def test_symmetric(self):
        rng = np.random.default_rng(11)
        a, b = rng.normal(size=64), rng.normal(size=64)

        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    @pytest.mark.unit
    def test_scale_invariant(self):
        assert cosine_similarity([1, 2, 3], [10, 20, 30]) == pytest.approx(1.0)

    @pytest.mark.unit
    def test_zero_vector_is_undefined(self):
        with pytest.raises(UndefinedSimilarityError):
            cosine_similarity([0.0, 0.0], [1.0, 0.0])

    @pytest.mark.unit
    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError) as exc_info:
            cosine_similarity([1.0, 0.0, 0.0], [1.0, 0.0])

        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2

    @pytest.mark.unit
    def test_float32_inputs_accumulate_in_float64(self):
        vector = np.full(4096, 1e-3, dtype=np.float32)

        assert cosine_similarity(vector, vector) == pytest.approx(1.0, abs=1e-9)

    @pytest.mark.unit
    def test_tiny_vectors_score_one_with_themselves(self):
        vector = [1e-170, 1e-170]

        assert cosine_similarity(vector, vector) == pytest.approx(1.0, abs=1e-9)

    @pytest.mark.unit
    def test_huge_vectors_score_one_with_themselves(self):
        vector = [1e200, -3e200, 2e200]

        assert cosine_similarity(vector, vector) == pytest.approx(1.0, abs=1e-9)

    @pytest.mark.unit
    @pytest.mark.parametrize("bad", [[np.inf, 1.0], [np.nan, 1.0]])
    def test_non_finite_vector_is_undefined(self, bad):
        with pytest.raises(UndefinedSimilarityError, match="non-finite"):
            cosine_similarity(bad, [1.0, 0.0])


class TestScoreAll:
    """Scoring a reference against many candidates."""

    @pytest.mark.unit
    def test_results_follow_candidate_order(self):
        results = score_all(
            [1.0, 0.0],
            [[0.0, 1.0], [1.0, 0.0], [-1.0, 0.0]],
            ["orthogonal", "same", "opposite"],
        )

        assert [r.sentence for r in results] == ["orthogonal", "same", "opposite"]
        assert [r.similarity for r in results] == pytest.approx([0.0, 1.0, -1.0])

    @pytest.mark.unit
    def test_scores_within_bounds(self):
        rng = np.random.default_rng(3)
        reference = rng.normal(size=32)
        candidates = rng.normal(size=(20, 32))

        results = score_all(reference, candidates)

        assert all(-1.0 <= r.similarity <= 1.0 for r in results)
        assert [r.sentence for r in results] == [str(i) for i in range(20)]

    @pytest.mark.unit
    def test_mismatch_detected_before_any_scoring(self):
        reference = np.ones(384)
        candidates = [np.ones(384), np.ones(768)]

        with (
            patch("services.common.similarity._scaled") as mock_scaled,
            pytest.raises(DimensionMismatchError) as exc_info,
        ):
            score_all(reference, candidates)

        mock_scaled.assert_not_called()
        assert exc_info.value.index == 1
        assert exc_info.value.expected == 384
        assert exc_info.value.actual == 768

    @pytest.mark.unit
    def test_zero_candidate_is_undefined(self):
        with pytest.raises(UndefinedSimilarityError):
            score_all([1.0, 1.0], [[1.0, 0.0], [0.0, 0.0]])

    @pytest.mark.unit
    def test_label_count_must_match(self):
        with pytest.raises(ValueError):
            score_all([1.0, 0.0], [[1.0, 0.0]], ["one", "two"])

    @pytest.mark.unit
    def test_empty_candidates(self):
        assert score_all([1.0, 0.0], []) == []

    @pytest.mark.unit
    def test_result_payload(self):
        result = SimilarityResult(sentence="hello", similarity=0.5)

        assert result.as_payload() == {"sentence": "hello", "similarity": 0.5}
