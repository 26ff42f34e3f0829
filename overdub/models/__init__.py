"""Data models for the overdub application."""

from .audio import SampleBuffer, EncodedAudioChunk, CaptureConstraints, raw_pcm_mime_type
from .recording import RecordingStatus, RecordingState, INITIAL_STATE
from .mix import (
    MixInput,
    MixRequest,
    DroppedInput,
    DecodeOutcome,
    MixResult,
    MixdownResult,
    ScheduledBuffer,
    PlaybackPlan,
)
from .session import SessionHandle, TrackInfo, TakeResult

__all__ = [
    "SampleBuffer",
    "EncodedAudioChunk",
    "CaptureConstraints",
    "raw_pcm_mime_type",
    "RecordingStatus",
    "RecordingState",
    "INITIAL_STATE",
    # Mixing
    "MixInput",
    "MixRequest",
    "DroppedInput",
    "DecodeOutcome",
    "MixResult",
    "MixdownResult",
    "ScheduledBuffer",
    "PlaybackPlan",
    # Sessions
    "SessionHandle",
    "TrackInfo",
    "TakeResult",
]
