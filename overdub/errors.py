"""Error taxonomy for capture, mixing and storage."""

from enum import Enum
from typing import List, Optional


class DeviceFailure(Enum):
    """Why a capture device could not be acquired."""
    PERMISSION_DENIED = "permission_denied"
    NO_DEVICE = "no_device"
    DEVICE_BUSY = "device_busy"
    UNSUPPORTED_FORMAT = "unsupported_format"
    UNKNOWN = "unknown"


class OverdubError(Exception):
    """Base class; every error carries a kind and a human-readable cause."""

    kind = "error"

    def __init__(self, cause: str):
        super().__init__(cause)
        self.cause = cause


class InvalidRequest(OverdubError):
    """Empty mix request, duplicate input, or a transition not allowed from the current state."""

    kind = "invalid_request"


class DeviceUnavailable(OverdubError):
    """The capture device could not be acquired. Never retried automatically."""

    kind = "device_unavailable"

    _MESSAGES = {
        DeviceFailure.PERMISSION_DENIED: "Microphone permission denied. Check your system audio settings.",
        DeviceFailure.NO_DEVICE: "No microphone found. Connect a microphone and try again.",
        DeviceFailure.DEVICE_BUSY: "The microphone is being used by another application.",
        DeviceFailure.UNSUPPORTED_FORMAT: "The microphone does not support the requested format.",
        DeviceFailure.UNKNOWN: "Could not access the microphone.",
    }

    def __init__(self, reason: DeviceFailure, detail: Optional[str] = None):
        cause = self._MESSAGES[reason]
        if detail:
            cause = f"{cause} ({detail})"
        super().__init__(cause)
        self.reason = reason


class CaptureRuntimeError(OverdubError):
    """The capture device failed while a session was active."""

    kind = "capture_runtime_error"


class DecodeError(OverdubError):
    """One encoded input could not be decoded."""

    kind = "decode_error"

    def __init__(self, cause: str, source_id: Optional[str] = None):
        super().__init__(cause)
        self.source_id = source_id


class NoDecodableInput(OverdubError):
    """Every input of a mix or playback request failed to decode."""

    kind = "no_decodable_input"

    def __init__(self, dropped: List):
        super().__init__(f"None of the {len(dropped)} input(s) could be decoded")
        self.dropped = dropped


class StorageError(OverdubError):
    """The track store rejected or failed an operation."""

    kind = "storage_error"
