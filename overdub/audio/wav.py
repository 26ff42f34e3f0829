"""16-bit PCM WAV serialization."""

import struct
import logging

import numpy as np

from ..models.audio import SampleBuffer

logger = logging.getLogger(__name__)

WAV_MIME_TYPE = "audio/wav"
WAV_HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
PCM_FORMAT = 1

POSITIVE_SCALE = 32767
NEGATIVE_SCALE = 32768

# RIFF header, fmt chunk and data chunk header, all little-endian
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


def quantize_pcm16(samples: np.ndarray) -> np.ndarray:
    """Clamp float samples to [-1, 1] and quantize them to int16.

    Positive values scale by 32767 and negative values by 32768 so the full
    signed range is used without overflow. Rounding is half away from zero.
    NaN is treated as silence.
    """
    clipped = np.clip(np.nan_to_num(np.asarray(samples, dtype=np.float64)), -1.0, 1.0)
    quantized = np.where(
        clipped >= 0,
        np.floor(clipped * POSITIVE_SCALE + 0.5),
        np.ceil(clipped * NEGATIVE_SCALE - 0.5),
    )
    return quantized.astype(np.int16)


def pcm16_to_float(samples: np.ndarray) -> np.ndarray:
    """Exact inverse scaling of quantize_pcm16."""
    values = np.asarray(samples, dtype=np.float64)
    return np.where(values >= 0, values / POSITIVE_SCALE, values / NEGATIVE_SCALE)


def encode_wav(buffer: SampleBuffer) -> bytes:
    """Serialize a buffer as a canonical 44-byte-header PCM WAV file.

    Args:
        buffer: Samples to encode; channels are interleaved frame-major

    Returns:
        Complete WAV file bytes
    """
    channels = buffer.channel_count
    block_align = channels * BITS_PER_SAMPLE // 8
    data = quantize_pcm16(buffer.interleaved()).astype("<i2").tobytes()
    data_size = len(data)

    header = _HEADER.pack(
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT,
        channels,
        buffer.sample_rate,
        buffer.sample_rate * block_align,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_size,
    )
    logger.debug(f"Encoded WAV: {buffer.frame_count} frames, {channels} channels, "
                 f"{buffer.sample_rate}Hz, {data_size} data bytes")
    return header + data
