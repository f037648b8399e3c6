"""Speech recognition and synthesis on top of the pipeline gateway."""

from __future__ import annotations

import asyncio
from typing import Any

import numpy as np

from services.common.audio import AudioNormalizer, encode_wav
from services.common.logging import get_logger
from services.common.pipelines import PipelineGateway

logger = get_logger(__name__, service_name="api")

_normalizer = AudioNormalizer()
_normalizer.set_logger(logger)


async def transcribe_audio(gateway: PipelineGateway, wav_bytes: bytes) -> str:
    """Transcribe an uploaded WAV file.

    The audio is normalized to 16 kHz mono float32 off the event loop before
    it reaches the recognizer. Raises UnsupportedFormatError for undecodable
    input.
    """
    samples = await asyncio.to_thread(_normalizer.normalize, wav_bytes)
    result = await gateway.run(
        "asr",
        {"raw": samples, "sampling_rate": _normalizer.target_sample_rate},
    )
    return _text_of(result)


def _text_of(result: Any) -> str:
    if isinstance(result, list):
        result = result[0] if result else {}
    return str(result.get("text", "")).strip()


async def synthesize_speech(gateway: PipelineGateway, text: str) -> bytes:
    """Synthesize ``text`` and return it as a mono 32-bit float WAV file."""
    speaker_embeddings = await gateway.get("tts_speaker_embeddings")
    output = await gateway.run(
        "tts",
        text,
        forward_params={"speaker_embeddings": speaker_embeddings},
    )
    audio = np.asarray(output["audio"], dtype=np.float32)
    wav = await asyncio.to_thread(encode_wav, audio, output["sampling_rate"])
    logger.debug(
        "audio.synthesized",
        text_length=len(text),
        samples=int(audio.size),
        sample_rate=output["sampling_rate"],
    )
    return wav


__all__ = ["synthesize_speech", "transcribe_audio"]
