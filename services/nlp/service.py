"""Text generation, question answering and sentence similarity."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np

from services.common.logging import get_logger
from services.common.pipelines import PipelineGateway
from services.common.similarity import SimilarityResult, score_all

logger = get_logger(__name__, service_name="api")

DEFAULT_MAX_NEW_TOKENS = 128


def _first(result: Any) -> Any:
    while isinstance(result, list):
        if not result:
            return {}
        result = result[0]
    return result


async def generate_text(
    gateway: PipelineGateway, prompt: str, max_new_tokens: int = DEFAULT_MAX_NEW_TOKENS
) -> str:
    """Return the first completion for ``prompt``."""
    result = await gateway.run("text_generation", prompt, max_new_tokens=max_new_tokens)
    return str(_first(result).get("generated_text", ""))


async def answer_question(gateway: PipelineGateway, question: str, context: str) -> str:
    """Extract the answer to ``question`` from ``context``."""
    result = await gateway.run("question_answering", question=question, context=context)
    return str(_first(result).get("answer", ""))


def sentence_embedding(token_embeddings: Any) -> np.ndarray:
    """Mean-pool per-token feature vectors into one sentence vector.

    Feature extraction yields ``(1, tokens, dims)`` for a single sentence;
    already pooled ``(dims,)`` output passes through unchanged.
    """
    array = np.asarray(token_embeddings, dtype=np.float64)
    if array.ndim <= 1:
        return array.reshape(-1)
    return array.reshape(-1, array.shape[-1]).mean(axis=0)


async def compute_similarity(
    gateway: PipelineGateway, sentence_ref: str, sentences: Sequence[str]
) -> list[SimilarityResult]:
    """Score each sentence against ``sentence_ref`` by cosine similarity.

    Results follow the order of ``sentences``.
    """
    texts = [sentence_ref, *sentences]
    outputs = await gateway.run("sentence_similarity", texts)
    if len(outputs) != len(texts):
        raise ValueError(
            f"feature extraction returned {len(outputs)} embeddings for {len(texts)} inputs"
        )
    reference, *candidates = (sentence_embedding(output) for output in outputs)
    results = score_all(reference, candidates, list(sentences))
    logger.debug(
        "nlp.similarity_scored",
        candidates=len(results),
        dimensions=int(reference.shape[0]),
    )
    return results


__all__ = [
    "DEFAULT_MAX_NEW_TOKENS",
    "answer_question",
    "compute_similarity",
    "generate_text",
    "sentence_embedding",
]
