"""Recording state models published by the capture state machine."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from .audio import EncodedAudioChunk


class RecordingStatus(Enum):
    """Lifecycle state of one capture session."""
    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass(frozen=True)
class RecordingState:
    """Immutable snapshot of a capture session."""
    status: RecordingStatus = RecordingStatus.IDLE
    duration_ms: int = 0
    finalized_stream: Optional[EncodedAudioChunk] = None
    error: Optional[str] = None  # Cause of an implicit stop after a device failure

    @property
    def is_recording(self) -> bool:
        # Paused still counts as an active recording
        return self.status in (RecordingStatus.RECORDING, RecordingStatus.PAUSED)

    @property
    def is_paused(self) -> bool:
        return self.status is RecordingStatus.PAUSED

    def evolve(self, **changes) -> "RecordingState":
        return replace(self, **changes)


INITIAL_STATE = RecordingState()
