"""Audio-related data models."""

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

RAW_PCM_MIME_TYPE = "audio/pcm"  # headerless signed 16-bit little-endian


@dataclass(eq=False)
class SampleBuffer:
    """Decoded PCM audio.

    ``samples`` is a float array shaped ``(frame_count, channel_count)`` so that
    ``samples[frame][channel]`` addresses one amplitude in [-1.0, 1.0].
    """
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        samples = np.asarray(self.samples, dtype=np.float64)
        if samples.ndim == 1:
            samples = samples.reshape(-1, 1)
        if samples.ndim != 2:
            raise ValueError(f"samples must be 2-D (frames, channels), got {samples.ndim}-D")
        if samples.shape[1] < 1:
            raise ValueError("samples must have at least one channel")
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        self.samples = samples
        self.sample_rate = int(self.sample_rate)

    @property
    def frame_count(self) -> int:
        return self.samples.shape[0]

    @property
    def channel_count(self) -> int:
        return self.samples.shape[1]

    @property
    def duration_seconds(self) -> float:
        return self.frame_count / self.sample_rate

    def channel(self, index: int) -> np.ndarray:
        """Return one channel as a 1-D array."""
        return self.samples[:, index]

    def interleaved(self) -> np.ndarray:
        """Samples flattened frame-major: L0, R0, L1, R1, ..."""
        return self.samples.reshape(-1)

    def to_stereo(self) -> "SampleBuffer":
        """Return a two-channel copy; mono is duplicated to both channels."""
        if self.channel_count == 2:
            return SampleBuffer(self.samples.copy(), self.sample_rate)
        if self.channel_count == 1:
            return SampleBuffer(np.repeat(self.samples, 2, axis=1), self.sample_rate)
        raise ValueError(f"Cannot normalize {self.channel_count}-channel audio to stereo")

    @classmethod
    def silent(cls, frame_count: int, channel_count: int, sample_rate: int) -> "SampleBuffer":
        return cls(np.zeros((frame_count, channel_count), dtype=np.float64), sample_rate)

    @classmethod
    def from_interleaved(cls, samples: Sequence[float], channel_count: int,
                         sample_rate: int) -> "SampleBuffer":
        flat = np.asarray(samples, dtype=np.float64)
        if flat.size % channel_count != 0:
            raise ValueError(
                f"{flat.size} samples cannot be split into {channel_count} channels")
        return cls(flat.reshape(-1, channel_count), sample_rate)


@dataclass(frozen=True)
class EncodedAudioChunk:
    """Opaque encoded audio bytes with a MIME-like format tag."""
    data: bytes
    mime_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @classmethod
    def concatenate(cls, chunks: List["EncodedAudioChunk"], mime_type: str) -> "EncodedAudioChunk":
        """Join chunks in arrival order into a single stream."""
        return cls(data=b"".join(chunk.data for chunk in chunks), mime_type=mime_type)


@dataclass(frozen=True)
class CaptureConstraints:
    """What to ask the capture device for."""
    sample_rate: int = 44100
    channels: int = 1
    chunk_size: int = 4410  # 100ms at 44.1kHz

    @property
    def mime_type(self) -> str:
        return raw_pcm_mime_type(self.sample_rate, self.channels)


def raw_pcm_mime_type(sample_rate: int, channels: int) -> str:
    """Format tag for headerless 16-bit little-endian PCM."""
    return f"{RAW_PCM_MIME_TYPE};rate={sample_rate};channels={channels}"
