"""Test fixtures for common service tests."""

import io
from collections.abc import Callable

import numpy as np
import pytest
import soundfile as sf


@pytest.fixture
def generate_test_audio() -> Callable[..., np.ndarray]:
    """Generate a ``(channels, samples)`` sine wave in float32."""

    def _generate_audio(
        sample_rate: int = 16000,
        duration: float = 1.0,
        frequency: float = 440.0,
        channels: int = 1,
    ) -> np.ndarray:
        t = np.linspace(0, duration, int(sample_rate * duration), False)
        tone = (np.sin(2 * np.pi * frequency * t) * 0.5).astype(np.float32)
        return np.stack([tone * (1.0 - 0.2 * c) for c in range(channels)])

    return _generate_audio


@pytest.fixture
def make_wav_bytes() -> Callable[..., bytes]:
    """Encode ``(channels, samples)`` audio as a WAV file."""

    def _make_wav(
        channels: np.ndarray, sample_rate: int = 16000, subtype: str = "PCM_16"
    ) -> bytes:
        buffer = io.BytesIO()
        sf.write(buffer, np.asarray(channels).T, sample_rate, format="WAV", subtype=subtype)
        return buffer.getvalue()

    return _make_wav
