"""Audio routes: /audio/transcribe and /audio/synthesize."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from services.audio.service import synthesize_speech, transcribe_audio
from services.common.http import http_error, max_upload_bytes, read_upload
from services.common.logging import get_logger
from services.common.pipelines import PipelineGateway, get_gateway

logger = get_logger(__name__, service_name="api")

router = APIRouter(prefix="/audio", tags=["Audio"])


class TranscriptionResponse(BaseModel):
    transcription: str


@router.post("/transcribe", response_model=TranscriptionResponse)
async def transcribe(
    request: Request,
    audio: UploadFile,
    gateway: PipelineGateway = Depends(get_gateway),
) -> TranscriptionResponse:
    """Transcribe a WAV upload (multipart field ``audio``)."""
    data = await read_upload(audio, field="audio", max_bytes=max_upload_bytes(request))
    try:
        text = await transcribe_audio(gateway, data)
    except Exception as exc:
        raise http_error(
            exc,
            "Failed to transcribe audio",
            logger=logger,
            event="audio.transcribe_failed",
            filename=audio.filename,
        ) from exc
    logger.info("audio.transcribed", input_bytes=len(data), text_length=len(text))
    return TranscriptionResponse(transcription=text)


@router.get(
    "/synthesize",
    response_class=Response,
    responses={200: {"content": {"audio/wav": {}}}},
)
async def synthesize(
    text: str = Query(..., min_length=1, description="Text to speak"),
    gateway: PipelineGateway = Depends(get_gateway),
) -> Response:
    """Speak ``text`` and return a WAV file."""
    try:
        wav = await synthesize_speech(gateway, text)
    except Exception as exc:
        raise http_error(
            exc,
            "Failed to synthesize speech",
            logger=logger,
            event="audio.synthesize_failed",
        ) from exc
    return Response(content=wav, media_type="audio/wav")


__all__ = ["router"]
