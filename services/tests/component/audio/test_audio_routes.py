"""Tests for the /audio routes."""

import asyncio
import io
from unittest.mock import patch

import numpy as np
import pytest
import soundfile as sf

from services.audio import service as audio_service
from services.common.audio import encode_wav
from services.common.pipelines import InferenceError, PipelineUnavailableError


class TestTranscribe:
    """POST /audio/transcribe."""

    @pytest.mark.component
    def test_transcribes_normalized_audio(self, api_client, fake_gateway, make_wav):
        fake_gateway.responses["asr"] = lambda inputs: {"text": " hello world "}

        response = api_client.post(
            "/audio/transcribe",
            files={"audio": ("clip.wav", make_wav(sample_rate=44100, channels=2), "audio/wav")},
        )

        assert response.status_code == 200
        assert response.json() == {"transcription": "hello world"}
        name, args, _ = fake_gateway.calls[0]
        assert name == "asr"
        samples = args[0]["raw"]
        assert args[0]["sampling_rate"] == 16000
        assert samples.dtype == np.float32
        assert samples.ndim == 1
        assert abs(samples.shape[0] - 44100 * 0.25 * 16000 / 44100) <= 1

    @pytest.mark.component
    def test_missing_file_is_bad_request(self, api_client):
        response = api_client.post("/audio/transcribe")

        assert response.status_code == 400
        assert "detail" in response.json()

    @pytest.mark.component
    def test_empty_file_is_bad_request(self, api_client):
        response = api_client.post(
            "/audio/transcribe", files={"audio": ("empty.wav", b"", "audio/wav")}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "No audio file provided"

    @pytest.mark.component
    def test_undecodable_audio_is_bad_request(self, api_client, fake_gateway):
        fake_gateway.responses["asr"] = {"text": "unused"}

        response = api_client.post(
            "/audio/transcribe",
            files={"audio": ("clip.wav", b"this is not audio", "audio/wav")},
        )

        assert response.status_code == 400
        assert fake_gateway.calls == []

    @pytest.mark.component
    def test_oversized_upload_rejected(self, api_client):
        response = api_client.post(
            "/audio/transcribe",
            files={"audio": ("big.wav", b"\0" * (1024 * 1024 + 1), "audio/wav")},
        )

        assert response.status_code == 413

    @pytest.mark.component
    def test_inference_failure(self, api_client, fake_gateway, make_wav):
        fake_gateway.responses["asr"] = InferenceError("asr", RuntimeError("cuda"))

        response = api_client.post(
            "/audio/transcribe", files={"audio": ("clip.wav", make_wav(), "audio/wav")}
        )

        assert response.status_code == 500
        assert response.json() == {"detail": "Failed to transcribe audio"}

    @pytest.mark.component
    def test_model_unavailable(self, api_client, fake_gateway, make_wav):
        fake_gateway.responses["asr"] = PipelineUnavailableError(
            "asr", {"loaded": False, "loading": False, "error": "disk full"}
        )

        response = api_client.post(
            "/audio/transcribe", files={"audio": ("clip.wav", make_wav(), "audio/wav")}
        )

        assert response.status_code == 503

    @pytest.mark.component
    def test_normalization_runs_in_worker_thread(self, api_client, fake_gateway, make_wav):
        fake_gateway.responses["asr"] = {"text": "hi"}

        with patch("asyncio.to_thread", wraps=asyncio.to_thread) as to_thread:
            response = api_client.post(
                "/audio/transcribe", files={"audio": ("clip.wav", make_wav(), "audio/wav")}
            )

        assert response.status_code == 200
        offloaded = [call.args[0] for call in to_thread.call_args_list]
        assert audio_service._normalizer.normalize in offloaded


class TestSynthesize:
    """GET /audio/synthesize."""

    @pytest.mark.component
    def test_returns_float_wav(self, api_client, fake_gateway):
        speaker = object()
        received = {}

        def tts(text, forward_params):
            received["text"] = text
            received["speaker"] = forward_params["speaker_embeddings"]
            return {"audio": np.full((1, 800), 0.25, dtype=np.float32), "sampling_rate": 16000}

        fake_gateway.responses["tts_speaker_embeddings"] = speaker
        fake_gateway.responses["tts"] = tts

        response = api_client.get("/audio/synthesize", params={"text": "Hello there"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "audio/wav"
        info = sf.info(io.BytesIO(response.content))
        assert info.channels == 1
        assert info.samplerate == 16000
        assert info.subtype == "FLOAT"
        assert info.frames == 800
        assert received == {"text": "Hello there", "speaker": speaker}

    @pytest.mark.component
    @pytest.mark.parametrize("params", [{}, {"text": ""}])
    def test_missing_text_is_bad_request(self, api_client, params):
        response = api_client.get("/audio/synthesize", params=params)

        assert response.status_code == 400

    @pytest.mark.component
    def test_synthesis_failure(self, api_client, fake_gateway):
        fake_gateway.responses["tts_speaker_embeddings"] = object()
        fake_gateway.responses["tts"] = InferenceError("tts", ValueError("bad"))

        response = api_client.get("/audio/synthesize", params={"text": "hi"})

        assert response.status_code == 500
        assert response.json() == {"detail": "Failed to synthesize speech"}

    @pytest.mark.component
    def test_encoding_runs_in_worker_thread(self, api_client, fake_gateway):
        fake_gateway.responses["tts_speaker_embeddings"] = object()
        fake_gateway.responses["tts"] = lambda text, forward_params: {
            "audio": np.zeros(160, dtype=np.float32),
            "sampling_rate": 16000,
        }

        with patch("asyncio.to_thread", wraps=asyncio.to_thread) as to_thread:
            response = api_client.get("/audio/synthesize", params={"text": "hi"})

        assert response.status_code == 200
        offloaded = [call.args[0] for call in to_thread.call_args_list]
        assert encode_wav in offloaded
