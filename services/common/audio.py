"""
Audio normalization for the speech pipelines.

Speech recognition models expect one channel of 32-bit float samples at
16 kHz. ``AudioNormalizer`` turns an uploaded WAV (any channel count, bit
depth and sample rate) into exactly that, using soundfile for decoding and
encoding and librosa for resampling.
"""

from __future__ import annotations

import io
import math
from dataclasses import dataclass
from typing import Any

import librosa
import numpy as np
import soundfile as sf


TARGET_SAMPLE_RATE = 16000

# soundfile subtype -> bit depth/format tag
_SUBTYPE_BIT_DEPTHS = {
    "PCM_S8": "8",
    "PCM_U8": "8",
    "PCM_16": "16",
    "PCM_24": "24",
    "PCM_32": "32",
    "FLOAT": "32f",
    "DOUBLE": "64f",
}


class UnsupportedFormatError(ValueError):
    """Audio cannot be interpreted as per-channel sample arrays."""


@dataclass(slots=True)
class Waveform:
    """Decoded audio: a ``(channels, samples)`` array plus its format.

    Channel data is coerced with ``np.asarray`` on construction; a 1-D
    sequence becomes a single channel. Raises UnsupportedFormatError when
    the data is not numeric, is ragged (channels of unequal length) or has
    no channels at all.
    """

    channels: np.ndarray
    sample_rate: int
    bit_depth: str = "32f"

    def __post_init__(self) -> None:
        sample_rate = self.sample_rate
        if isinstance(sample_rate, bool) or not isinstance(
            sample_rate, (int, np.integer)
        ):
            raise UnsupportedFormatError(
                f"sample_rate must be an integer, got {type(sample_rate).__name__}"
            )
        if sample_rate <= 0:
            raise UnsupportedFormatError(
                f"sample_rate must be positive, got {sample_rate}"
            )
        self.sample_rate = int(sample_rate)
        self.channels = _channel_array(self.channels)

    @classmethod
    def from_channels(
        cls, channels: Any, sample_rate: int, bit_depth: str = "32f"
    ) -> Waveform:
        """Build a waveform from array-like channel data."""
        return cls(channels=channels, sample_rate=sample_rate, bit_depth=bit_depth)

    @property
    def channel_count(self) -> int:
        return int(self.channels.shape[0])

    @property
    def num_samples(self) -> int:
        return int(self.channels.shape[1])


def _channel_array(channels: Any) -> np.ndarray:
    if channels is None or isinstance(channels, (str, bytes, dict)):
        raise UnsupportedFormatError(
            f"channel data must be array-like, got {type(channels).__name__}"
        )
    try:
        array = np.asarray(channels)
    except ValueError as exc:
        raise UnsupportedFormatError(f"channels have unequal length: {exc}") from exc

    if array.dtype.kind not in "biuf":
        raise UnsupportedFormatError(
            f"channel data must be numeric samples, got dtype {array.dtype}"
        )
    if array.ndim == 1:
        array = array.reshape(1, -1)
    if array.ndim != 2 or array.shape[0] == 0:
        raise UnsupportedFormatError(
            f"expected (channels, samples) data, got shape {array.shape}"
        )
    return array


class AudioNormalizer:
    """Convert decoded audio into mono float32 samples at a fixed rate."""

    def __init__(self, target_sample_rate: int = TARGET_SAMPLE_RATE) -> None:
        self.target_sample_rate = target_sample_rate
        self._logger: Any | None = None

    def set_logger(self, logger: Any) -> None:
        self._logger = logger

    def _log(self, level: str, message: str, **kwargs: Any) -> None:
        if self._logger is not None:
            getattr(self._logger, level)(message, **kwargs)

    def decode(self, data: bytes) -> Waveform:
        """Decode an audio file buffer (WAV, FLAC, ...) into a Waveform.

        Integer PCM is scaled into [-1.0, 1.0] by the decoder; the source
        bit depth is kept as the waveform's format tag.
        """
        if not data:
            raise UnsupportedFormatError("audio buffer is empty")
        try:
            with sf.SoundFile(io.BytesIO(data)) as audio_file:
                bit_depth = _SUBTYPE_BIT_DEPTHS.get(audio_file.subtype, "unknown")
                sample_rate = audio_file.samplerate
                frames = audio_file.read(dtype="float64", always_2d=True)
        except (RuntimeError, TypeError, ValueError) as exc:
            self._log("warning", "audio.decode_failed", error=str(exc))
            raise UnsupportedFormatError(f"cannot decode audio: {exc}") from exc

        waveform = Waveform.from_channels(frames.T, sample_rate, bit_depth=bit_depth)
        self._log(
            "debug",
            "audio.decoded",
            channels=waveform.channel_count,
            sample_rate=waveform.sample_rate,
            bit_depth=waveform.bit_depth,
            samples=waveform.num_samples,
        )
        return waveform

    def to_float32(self, waveform: Waveform) -> Waveform:
        """Re-quantize every sample to 32-bit float within [-1.0, 1.0]."""
        samples = np.asarray(waveform.channels, dtype=np.float64)
        if waveform.channels.dtype.kind in "iu":
            # raw integer PCM: scale by the full-scale value of its dtype
            info = np.iinfo(waveform.channels.dtype)
            if info.min == 0:
                samples = (samples - (info.max + 1) / 2) / ((info.max + 1) / 2)
            else:
                samples = samples / -float(info.min)
        elif waveform.channels.dtype.kind == "b":
            samples = samples * 2.0 - 1.0
        converted = np.clip(samples, -1.0, 1.0).astype(np.float32)
        return Waveform(converted, waveform.sample_rate, bit_depth="32f")

    def resample(self, waveform: Waveform, target_rate: int | None = None) -> Waveform:
        """Resample every channel to ``target_rate`` (default: the normalizer's target)."""
        target = target_rate or self.target_sample_rate
        if waveform.sample_rate == target:
            return waveform
        if waveform.num_samples == 0:
            return Waveform(waveform.channels, target, waveform.bit_depth)

        resampled = librosa.resample(
            waveform.channels,
            orig_sr=waveform.sample_rate,
            target_sr=target,
            axis=-1,
        )
        self._log(
            "debug",
            "audio.resampled",
            from_rate=waveform.sample_rate,
            to_rate=target,
            original_samples=waveform.num_samples,
            resampled_samples=resampled.shape[-1],
        )
        return Waveform(
            resampled.astype(waveform.channels.dtype, copy=False),
            target,
            waveform.bit_depth,
        )

    def downmix(self, waveform: Waveform) -> np.ndarray:
        """Merge all channels into one, compensating for the averaging loss.

        Two channels merge as ``sqrt(2) * (left + right) / 2``; N channels as
        ``sqrt(N) * sum / N``. Mono audio is returned unchanged.
        """
        count = waveform.channel_count
        if count == 1:
            return waveform.channels[0]
        scaling_factor = math.sqrt(count)
        merged = scaling_factor * waveform.channels.sum(axis=0) / count
        return merged.astype(waveform.channels.dtype, copy=False)

    def normalize(self, audio: bytes | Waveform) -> np.ndarray:
        """Return mono float32 samples at the target rate for raw bytes or a Waveform."""
        waveform = self.decode(audio) if isinstance(audio, (bytes, bytearray)) else audio
        if not isinstance(waveform, Waveform):
            raise UnsupportedFormatError(
                f"expected audio bytes or a Waveform, got {type(audio).__name__}"
            )
        original_rate = waveform.sample_rate
        original_channels = waveform.channel_count

        waveform = self.to_float32(waveform)
        waveform = self.resample(waveform)
        mono = np.ascontiguousarray(self.downmix(waveform), dtype=np.float32)

        self._log(
            "debug",
            "audio.normalized",
            from_rate=original_rate,
            to_rate=waveform.sample_rate,
            channels=original_channels,
            samples=int(mono.shape[0]),
        )
        return mono


def encode_wav(samples: Any, sample_rate: int, subtype: str = "FLOAT") -> bytes:
    """Encode mono samples as a WAV file (32-bit float by default)."""
    data = np.asarray(samples, dtype=np.float32).squeeze()
    if data.ndim != 1:
        raise UnsupportedFormatError(
            f"expected mono samples, got shape {np.asarray(samples).shape}"
        )
    buffer = io.BytesIO()
    sf.write(buffer, data, int(sample_rate), format="WAV", subtype=subtype)
    return buffer.getvalue()


def normalize_audio(
    audio: bytes | Waveform, target_sample_rate: int = TARGET_SAMPLE_RATE
) -> np.ndarray:
    """Convenience wrapper around ``AudioNormalizer.normalize``."""
    return AudioNormalizer(target_sample_rate).normalize(audio)


__all__ = [
    "TARGET_SAMPLE_RATE",
    "AudioNormalizer",
    "UnsupportedFormatError",
    "Waveform",
    "encode_wav",
    "normalize_audio",
]
