"""Decoders that turn encoded audio bytes into sample buffers."""

import io
import logging
from abc import ABC, abstractmethod
from typing import Dict, Tuple

import numpy as np
from scipy.io import wavfile

from ..errors import DecodeError
from ..models.audio import SampleBuffer, EncodedAudioChunk, RAW_PCM_MIME_TYPE
from .wav import pcm16_to_float

logger = logging.getLogger(__name__)

WAV_MIME_TYPES = ("audio/wav", "audio/x-wav", "audio/wave", "audio/vnd.wave")


class AudioDecoder(ABC):
    """Abstract base class for decode collaborators."""

    @abstractmethod
    def decode(self, chunk: EncodedAudioChunk) -> SampleBuffer:
        """Decode one encoded stream.

        Args:
            chunk: Encoded bytes and their format tag

        Returns:
            SampleBuffer with float samples in [-1.0, 1.0]

        Raises:
            DecodeError: If the bytes cannot be decoded
        """
        pass


def parse_mime_type(mime_type: str) -> Tuple[str, Dict[str, str]]:
    """Split ``type/subtype;key=value`` into the base type and its parameters."""
    parts = [part.strip() for part in mime_type.split(";")]
    params = {}
    for part in parts[1:]:
        if "=" in part:
            key, value = part.split("=", 1)
            params[key.strip().lower()] = value.strip()
    return parts[0].lower(), params


class PcmDecoder(AudioDecoder):
    """Decodes uncompressed audio: WAV files and headerless 16-bit PCM."""

    def decode(self, chunk: EncodedAudioChunk) -> SampleBuffer:
        if not chunk.data:
            raise DecodeError("Encoded stream is empty")

        base_type, params = parse_mime_type(chunk.mime_type)
        if base_type in WAV_MIME_TYPES:
            return self._decode_wav(chunk.data)
        if base_type == RAW_PCM_MIME_TYPE.lower():
            return self._decode_raw_pcm(chunk.data, params)
        raise DecodeError(f"Unsupported audio format: {chunk.mime_type}")

    def _decode_wav(self, data: bytes) -> SampleBuffer:
        try:
            sample_rate, samples = wavfile.read(io.BytesIO(data))
        except Exception as e:
            raise DecodeError(f"Invalid WAV data: {e}") from e

        if samples.size == 0 and samples.ndim == 1:
            samples = samples.reshape(0, 1)
        logger.debug(f"Decoded WAV: rate={sample_rate}, dtype={samples.dtype}, shape={samples.shape}")
        return SampleBuffer(self._to_float(samples), sample_rate)

    def _decode_raw_pcm(self, data: bytes, params: Dict[str, str]) -> SampleBuffer:
        try:
            sample_rate = int(params["rate"])
            channels = int(params.get("channels", "1"))
        except (KeyError, ValueError) as e:
            raise DecodeError(f"Raw PCM stream needs integer rate and channels parameters: {e}") from e

        frame_bytes = 2 * channels
        if channels < 1 or len(data) % frame_bytes != 0:
            raise DecodeError(
                f"Raw PCM stream of {len(data)} bytes is not a whole number of {channels}-channel frames")

        samples = np.frombuffer(data, dtype="<i2").reshape(-1, channels)
        return SampleBuffer(pcm16_to_float(samples), sample_rate)

    def _to_float(self, samples: np.ndarray) -> np.ndarray:
        """Scale integer PCM to floats in [-1, 1]."""
        if samples.dtype == np.int16:
            return pcm16_to_float(samples)
        if samples.dtype == np.int32:
            return samples.astype(np.float64) / 2147483648.0
        if samples.dtype == np.uint8:
            return (samples.astype(np.float64) - 128.0) / 128.0
        if np.issubdtype(samples.dtype, np.floating):
            return samples.astype(np.float64)
        raise DecodeError(f"Unsupported WAV sample type: {samples.dtype}")
