"""NLP routes: /nlp/generate, /nlp/qa and /nlp/similarity."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from services.common.http import http_error
from services.common.logging import get_logger
from services.common.pipelines import PipelineGateway, get_gateway
from services.nlp.service import (
    DEFAULT_MAX_NEW_TOKENS,
    answer_question,
    compute_similarity,
    generate_text,
)

logger = get_logger(__name__, service_name="api")

router = APIRouter(prefix="/nlp", tags=["NLP"])


class GenerateRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    max_new_tokens: int | None = Field(None, ge=1, le=2048)


class GenerateResponse(BaseModel):
    generated_text: str


class QuestionRequest(BaseModel):
    question: str = Field(..., min_length=1, description="The question to be answered")
    context: str = Field(
        ..., min_length=1, description="Text that contains the answer"
    )


class AnswerResponse(BaseModel):
    answer: str


class SimilarityRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sentence_ref: str = Field(..., alias="sentenceRef", min_length=1)
    sentence_arr: list[str] = Field(..., alias="sentenceArr", min_length=1)


class SentenceScore(BaseModel):
    sentence: str
    similarity: float


class SimilarityResponse(BaseModel):
    similarities: list[SentenceScore]


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    body: GenerateRequest, gateway: PipelineGateway = Depends(get_gateway)
) -> GenerateResponse:
    """Continue a prompt with the text generation model."""
    max_new_tokens = body.max_new_tokens or DEFAULT_MAX_NEW_TOKENS
    try:
        text = await generate_text(gateway, body.prompt, max_new_tokens)
    except Exception as exc:
        raise http_error(
            exc,
            "Failed to generate text",
            logger=logger,
            event="nlp.generate_failed",
            max_new_tokens=max_new_tokens,
        ) from exc
    return GenerateResponse(generated_text=text)


@router.post("/qa", response_model=AnswerResponse)
async def qa(
    body: QuestionRequest, gateway: PipelineGateway = Depends(get_gateway)
) -> AnswerResponse:
    """Answer a question from the supplied context."""
    try:
        answer = await answer_question(gateway, body.question, body.context)
    except Exception as exc:
        raise http_error(
            exc,
            "Failed to answer the question",
            logger=logger,
            event="nlp.qa_failed",
        ) from exc
    return AnswerResponse(answer=answer)


@router.post("/similarity", response_model=SimilarityResponse)
async def similarity(
    body: SimilarityRequest, gateway: PipelineGateway = Depends(get_gateway)
) -> SimilarityResponse:
    """Cosine similarity of each sentence in ``sentenceArr`` to ``sentenceRef``."""
    try:
        results = await compute_similarity(gateway, body.sentence_ref, body.sentence_arr)
    except Exception as exc:
        raise http_error(
            exc,
            "Failed to compute similarity",
            logger=logger,
            event="nlp.similarity_failed",
            candidates=len(body.sentence_arr),
        ) from exc
    return SimilarityResponse(
        similarities=[SentenceScore(**result.as_payload()) for result in results]
    )


__all__ = ["router"]
