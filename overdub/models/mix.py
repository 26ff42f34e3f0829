"""Mixing request and result models."""

from dataclasses import dataclass, field
from typing import List, Optional

from .audio import EncodedAudioChunk, SampleBuffer


@dataclass(frozen=True)
class MixInput:
    """One encoded input identified by its source (usually a track id)."""
    source_id: str
    chunk: EncodedAudioChunk


@dataclass
class MixRequest:
    """Inputs to superimpose. Order does not affect the mixed result."""
    inputs: List[MixInput] = field(default_factory=list)


@dataclass(frozen=True)
class DroppedInput:
    """An input that was left out of a mix because it could not be decoded."""
    source_id: str
    reason: str


@dataclass
class DecodeOutcome:
    """Per-input result of the decode fan-out."""
    source_id: str
    buffer: Optional[SampleBuffer] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.buffer is not None


@dataclass
class MixResult:
    """Summed stereo mix plus a summary of what went into it."""
    buffer: SampleBuffer
    sources: List[str]
    dropped: List[DroppedInput] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        return self.buffer.duration_seconds


@dataclass
class MixdownResult:
    """A mix serialized as a WAV file."""
    wav_bytes: bytes
    mix: MixResult

    @property
    def dropped(self) -> List[DroppedInput]:
        return self.mix.dropped


@dataclass
class ScheduledBuffer:
    """A decoded buffer and the instant it must start on the playback clock."""
    source_id: str
    buffer: SampleBuffer
    start_at: float


@dataclass
class PlaybackPlan:
    """Buffers that all start together at ``start_at`` on one shared clock."""
    start_at: float
    entries: List[ScheduledBuffer]
    duration_seconds: float
    dropped: List[DroppedInput] = field(default_factory=list)

    @property
    def end_at(self) -> float:
        return self.start_at + self.duration_seconds
