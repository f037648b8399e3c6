"""Cosine similarity scoring over sentence embeddings."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass
from typing import Any

import numpy as np


class DimensionMismatchError(ValueError):
    """Vectors compared with each other have different lengths."""

    def __init__(self, expected: int, actual: int, index: int | None = None) -> None:
        self.expected = expected
        self.actual = actual
        self.index = index
        where = f" (candidate {index})" if index is not None else ""
        super().__init__(
            f"vector dimension mismatch{where}: expected {expected}, got {actual}"
        )


class UndefinedSimilarityError(ValueError):
    """Cosine similarity is undefined because a vector has zero magnitude."""


@dataclass(frozen=True, slots=True)
class SimilarityResult:
    sentence: str
    similarity: float

    def as_payload(self) -> dict[str, Any]:
        return asdict(self)


def _as_vector(values: Any) -> np.ndarray:
    vector = np.asarray(values, dtype=np.float64)
    if vector.ndim != 1:
        vector = vector.reshape(-1)
    return vector


def _scaled(vector: np.ndarray) -> np.ndarray:
    """Divide by the largest component so the dot products neither underflow nor overflow."""
    if not np.all(np.isfinite(vector)):
        raise UndefinedSimilarityError(
            "cosine similarity is undefined for a vector with non-finite components"
        )
    scale = float(np.max(np.abs(vector))) if vector.size else 0.0
    if scale == 0.0:
        raise UndefinedSimilarityError(
            "cosine similarity is undefined for a zero-magnitude vector"
        )
    return vector / scale


def _cosine(a: np.ndarray, b: np.ndarray, b_norm: float | None = None) -> float:
    if b_norm is None:
        b_norm = float(np.sqrt(np.dot(b, b)))
    score = float(np.dot(a, b)) / (float(np.sqrt(np.dot(a, a))) * b_norm)
    # rounding can push parallel vectors a hair past the bounds
    return min(1.0, max(-1.0, score))


def cosine_similarity(a: Any, b: Any) -> float:
    """Return ``dot(a, b) / (|a| * |b|)`` using float64 accumulation.

    Raises:
        DimensionMismatchError: the vectors differ in length
        UndefinedSimilarityError: either vector has zero magnitude or a
            non-finite component
    """
    vec_a = _as_vector(a)
    vec_b = _as_vector(b)
    if vec_a.shape[0] != vec_b.shape[0]:
        raise DimensionMismatchError(vec_a.shape[0], vec_b.shape[0])
    return _cosine(_scaled(vec_a), _scaled(vec_b))


def score_all(
    reference: Any,
    candidates: Sequence[Any],
    sentences: Sequence[str] | None = None,
) -> list[SimilarityResult]:
    """Score every candidate against the reference, preserving input order.

    ``sentences`` labels each candidate in the results; when omitted the
    candidate's position is used. Every dimension is checked before any
    score is computed.
    """
    if sentences is not None and len(sentences) != len(candidates):
        raise ValueError(
            f"got {len(sentences)} sentences for {len(candidates)} candidates"
        )

    ref = _as_vector(reference)
    vectors = [_as_vector(candidate) for candidate in candidates]
    for index, vector in enumerate(vectors):
        if vector.shape[0] != ref.shape[0]:
            raise DimensionMismatchError(ref.shape[0], vector.shape[0], index)

    ref = _scaled(ref)
    ref_norm = float(np.sqrt(np.dot(ref, ref)))
    results = []
    for index, vector in enumerate(vectors):
        label = sentences[index] if sentences is not None else str(index)
        results.append(
            SimilarityResult(
                sentence=label, similarity=_cosine(_scaled(vector), ref, ref_norm)
            )
        )
    return results


__all__ = [
    "DimensionMismatchError",
    "SimilarityResult",
    "UndefinedSimilarityError",
    "cosine_similarity",
    "score_all",
]
